"""
Guest Queue API

FastAPI application for the walk-in queue: kiosk and counter routers under
/api/v1, the queue maintenance scheduler, error envelopes and health probes.

Run with: uvicorn app.main:app
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api import api_router
from app.core.config import settings
from app.core.database import async_session_maker, close_db, init_db
from app.core.redis import close_redis, init_redis, ping_redis
from app.core.scheduler import (
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from app.modules.guest_queue.jobs import register_guest_queue_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Connect Redis and the database, start maintenance jobs; undo on shutdown."""
    logger.info(f"Starting Guest Queue API in {settings.python_env} mode...")

    # Redis only backs rate limiting, so it is optional outside production
    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    try:
        register_guest_queue_jobs()
        await start_scheduler()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield

    logger.info("Shutting down Guest Queue API...")

    # Running jobs hold sessions, so they finish before the pool is disposed
    await stop_scheduler()
    logger.info("[OK] Background scheduler stopped")

    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="Guest Queue API",
    description="Walk-in guest queue and archive for school admissions counters",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Error Handlers
# ============================================


def _validation_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed or missing request fields are client errors (400)."""
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "error": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "errors": _validation_errors(exc),
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


# ============================================
# Health
# ============================================


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {
        "service": "guest-queue-api",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe. Does not touch the database."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> JSONResponse:
    """
    Readiness probe.

    The database is required. Redis only backs rate limiting, so a missing
    Redis is reported but does not make the service unready.
    """
    checks: dict[str, str] = {}

    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as e:
        logger.error(f"Readiness check: database unavailable: {e}")
        checks["database"] = f"error: {e}"

    try:
        checks["redis"] = await ping_redis()
    except Exception as e:
        logger.warning(f"Readiness check: redis unavailable: {e}")
        checks["redis"] = f"error: {e}"

    ready = checks["database"] == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "unavailable", **checks},
    )


# ============================================
# Queue maintenance jobs (not mounted in production)
# ============================================

jobs_router = APIRouter(prefix="/debug/jobs", tags=["Debug"])


@jobs_router.get("")
async def list_jobs() -> dict[str, list[dict[str, Any]]]:
    """Registered maintenance jobs with next run time and pause state."""
    return {"jobs": list_registered_jobs()}


@jobs_router.post("/{job_id}/run")
async def run_job(job_id: str) -> dict[str, Any]:
    """
    Run a maintenance job now, outside its interval.

    Known jobs: ``guest_queue_sweep_stale_tickets``, ``guest_queue_reconcile_archive``.
    The job's summary (archived / deleted tickets, errors) is returned.
    """
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@jobs_router.post("/{job_id}/pause")
async def pause_job_endpoint(job_id: str) -> dict[str, Any]:
    return {"job_id": job_id, "paused": pause_job(job_id)}


@jobs_router.post("/{job_id}/resume")
async def resume_job_endpoint(job_id: str) -> dict[str, Any]:
    return {"job_id": job_id, "resumed": resume_job(job_id)}


if not settings.is_production:
    app.include_router(jobs_router)
