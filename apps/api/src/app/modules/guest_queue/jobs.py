"""
Guest Queue Background Jobs

Scheduled maintenance for the active queue:
1. Sweep stale tickets: tickets left over from an earlier local day are
   archived with exit reason ``other`` under the local day they were created,
   so they stop showing on counters and stop feeding their numbers into
   today's sequence.
2. Reconcile archive: an active row that already has an archive copy is
   deleted (the archive copy wins).

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Jobs open their own database sessions
- One transaction per ticket; a failing ticket doesn't stop the job
- Every job returns a summary dict (returned by POST /debug/jobs/{id}/run)
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.scheduler import register_job
from app.modules.guest_queue import archive, repository
from app.modules.guest_queue.helpers import (
    local_day_start,
    local_today,
    to_local_date,
    utc_now,
)
from app.modules.guest_queue.models import ExitReason, GuestQueueTicket

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_SWEEP_STALE_TICKETS = "guest_queue_sweep_stale_tickets"
JOB_ID_RECONCILE_ARCHIVE = "guest_queue_reconcile_archive"


def _ticket_ref(ticket: GuestQueueTicket) -> dict[str, Any]:
    return {
        "ticket_id": str(ticket.id),
        "department": ticket.department,
        "queue_number": ticket.queue_number,
    }


async def _archive_stale_ticket(ticket_id: UUID, now: datetime) -> dict[str, Any]:
    """Archive one stale ticket in its own session and transaction."""
    async with async_session_maker() as db:
        # Re-read with a lock; a counter may have finished it meanwhile
        ticket = await db.get(GuestQueueTicket, ticket_id, with_for_update=True)
        if ticket is None:
            return {"ticket_id": str(ticket_id), "status": "skipped", "reason": "already_gone"}

        ref = _ticket_ref(ticket)
        try:
            archived = await archive.archive_ticket(
                db,
                ticket,
                ExitReason.OTHER,
                now=now,
                archive_date=to_local_date(ticket.created_at),
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        return {**ref, "status": "archived", "unique_archive_id": archived.unique_archive_id}


async def sweep_stale_tickets(now: datetime | None = None) -> dict[str, Any]:
    """
    Archive active tickets created before the start of the local day.

    Returns:
        Summary with the cutoff, per-ticket results and counters
    """
    now = now or utc_now()
    today = local_today(now)
    cutoff = local_day_start(today)

    results: dict[str, Any] = {
        "cutoff": cutoff.isoformat(),
        "tickets": [],
        "total_archived": 0,
        "total_errors": 0,
    }

    async with async_session_maker() as db:
        stale = await repository.list_created_before(db, cutoff)
        stale_ids = [ticket.id for ticket in stale]

    logger.info(f"Stale ticket sweep: {len(stale_ids)} ticket(s) created before {today}")

    for ticket_id in stale_ids:
        try:
            result = await _archive_stale_ticket(ticket_id, now)
            results["tickets"].append(result)
            if result["status"] == "archived":
                results["total_archived"] += 1
        except Exception as e:
            logger.error(f"Error archiving stale ticket {ticket_id}: {e}", exc_info=True)
            results["tickets"].append(
                {"ticket_id": str(ticket_id), "status": "error", "error": str(e)}
            )
            results["total_errors"] += 1

    logger.info(
        f"Stale ticket sweep completed. "
        f"Archived: {results['total_archived']}, Errors: {results['total_errors']}"
    )
    return results


async def reconcile_archived_tickets() -> dict[str, Any]:
    """
    Delete active tickets that already have an archive row.

    Returns:
        Summary with per-ticket results and counters
    """
    results: dict[str, Any] = {"tickets": [], "total_deleted": 0, "total_errors": 0}

    async with async_session_maker() as db:
        leftovers = await repository.list_already_archived(db)

        for ticket in leftovers:
            ref = _ticket_ref(ticket)
            try:
                await repository.delete_ticket(db, ticket)
                await db.commit()
                results["tickets"].append({**ref, "status": "deleted"})
                results["total_deleted"] += 1
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error deleting archived ticket {ref}: {e}", exc_info=True)
                results["tickets"].append({**ref, "status": "error", "error": str(e)})
                results["total_errors"] += 1

    if results["total_deleted"] or results["total_errors"]:
        logger.warning(
            f"Archive reconciliation: deleted {results['total_deleted']} leftover active "
            f"ticket(s), errors: {results['total_errors']}"
        )
    return results


def register_guest_queue_jobs() -> None:
    """
    Register guest queue background jobs with the scheduler.

    Call during application startup, before the scheduler starts.
    """
    logger.info("Registering guest queue background jobs...")

    register_job(
        job_id=JOB_ID_SWEEP_STALE_TICKETS,
        func=sweep_stale_tickets,
        trigger=IntervalTrigger(minutes=settings.stale_ticket_sweep_interval_minutes),
    )
    register_job(
        job_id=JOB_ID_RECONCILE_ARCHIVE,
        func=reconcile_archived_tickets,
        trigger=IntervalTrigger(minutes=settings.archive_reconcile_interval_minutes),
    )

    logger.info("Guest queue background jobs registered successfully")
