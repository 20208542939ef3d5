"""
Guest Queue Admin Router

Counter-panel endpoints used by department staff to work the queue.

Endpoints:
- PUT /guest-queue/acceptQueue/{queueNumber} - Call a ticket to the counter
- PUT /guest-queue/finishQueue/{queueNumber} - Mark a ticket served
- PUT /guest-queue/skipQueue/{queueNumber} - Set a ticket aside
- GET /guest-queue/skippedQueues - Skipped tickets of a department
- PUT /guest-queue/reintegrateQueue/{queueNumber} - Return a skipped ticket
- PUT /guest-queue/transferQueue/{queueNumber} - Move a guest to another department
- DELETE /guest-queue/removeQueue/{queueNumber} - Remove a ticket
- GET /guest-queue/statistics - Department dashboard statistics
- GET /guest-queue/queue/archived - Archive export

Transfer and remove are rate limited per staff member (Redis sliding window,
in-memory fallback). Only requests that pass validation and find their
ticket count against the limit.
"""

import logging
from collections.abc import Awaitable, Callable
from functools import partial

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import enforce_staff_action_limit
from app.modules.guest_queue import service, statistics
from app.modules.guest_queue.errors import QueueServiceError, to_http_exception
from app.modules.guest_queue.schemas import (
    AcceptQueueResponse,
    ArchivedListResponse,
    ArchivedTicketResponse,
    FinishQueueResponse,
    ReintegrateQueueResponse,
    RemoveQueueRequest,
    RemoveQueueResponse,
    SkipQueueRequest,
    SkipQueueResponse,
    StatisticsResponse,
    TicketResponse,
    TransferQueueRequest,
    TransferQueueResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DEPARTMENT_FILTER = Query(None, description="Department name (Admissions, Registrar, ...)")
DEPARTMENT_HINT = Query(
    None, description="Department of the ticket, needed only when prefixes collide"
)


# ============================================
# Counter flow
# ============================================


@router.put(
    "/acceptQueue/{queue_number}",
    response_model=AcceptQueueResponse,
    summary="Accept Ticket",
    description="""
Call a pending ticket to the counter.

A skipped ticket is reintegrated and accepted in one step. The serving start
time is stamped on the first acceptance only. The response names the next
pending ticket so the panel can announce it.
""",
    responses={
        404: {"description": "Queue not found"},
        409: {
            "description": "Ticket is already being served",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "INVALID_TICKET_STATE",
                            "message": "Queue AD1 cannot be accepted. Current status: accepted",
                        }
                    }
                }
            },
        },
    },
)
async def accept_ticket(
    queue_number: str,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> AcceptQueueResponse:
    try:
        return await service.accept_ticket(db, queue_number, department=department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e


@router.put(
    "/finishQueue/{queue_number}",
    response_model=FinishQueueResponse,
    summary="Finish Ticket",
    description="""
Archive the ticket as served and return its timings, the next pending ticket
(a hint, not accepted) and today's statistics for the department.

Timings are minutes as 2-decimal strings. A ticket finished without being
accepted reports its whole stay as waiting time and `"0.00"` serving time.
""",
    responses={404: {"description": "Queue not found"}, 500: {"description": "Database error"}},
)
async def finish_ticket(
    queue_number: str,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> FinishQueueResponse:
    try:
        return await service.finish_ticket(db, queue_number, department=department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e


@router.put(
    "/skipQueue/{queue_number}",
    response_model=SkipQueueResponse,
    summary="Skip Ticket",
    description="Set a pending or accepted ticket aside. Returns the refreshed pending queue.",
    responses={404: {"description": "Queue not found"}, 409: {"description": "Already skipped"}},
)
async def skip_ticket(
    queue_number: str,
    data: SkipQueueRequest | None = Body(None),
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> SkipQueueResponse:
    data = data or SkipQueueRequest()
    try:
        return await service.skip_ticket(
            db, queue_number, skipped_by=data.skipped_by, department=department
        )
    except QueueServiceError as e:
        raise to_http_exception(e) from e


@router.get(
    "/skippedQueues",
    response_model=list[TicketResponse],
    summary="Skipped Tickets",
    description="Skipped tickets of a department, most recently skipped first.",
)
async def list_skipped(
    department: str | None = DEPARTMENT_FILTER,
    db: AsyncSession = Depends(get_db),
) -> list[TicketResponse]:
    try:
        tickets = await service.list_skipped(db, department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return [TicketResponse.model_validate(ticket) for ticket in tickets]


@router.put(
    "/reintegrateQueue/{queue_number}",
    response_model=ReintegrateQueueResponse,
    summary="Reintegrate Ticket",
    description="""
Return a skipped ticket to the pending queue at its original position
(ordering follows the original creation time). No-op for a ticket that is
not skipped.
""",
    responses={404: {"description": "Queue not found"}},
)
async def reintegrate_ticket(
    queue_number: str,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> ReintegrateQueueResponse:
    try:
        return await service.reintegrate_ticket(db, queue_number, department=department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e


# ============================================
# Staff exits
# ============================================


def _staff_limit(action: str, actor: str) -> Callable[[], Awaitable[None]]:
    """Rate-limit check the service runs after validation and lookup."""
    return partial(
        enforce_staff_action_limit,
        action,
        actor,
        settings.admin_action_rate_limit,
        settings.admin_action_rate_window_seconds,
    )


@router.put(
    "/transferQueue/{queue_number}",
    response_model=TransferQueueResponse,
    summary="Transfer Ticket",
    description="""
Move a guest to another department. The old ticket is archived as
`transferred`, and a new pending ticket is numbered in the target department
and placed at the back of its queue. Both happen in one transaction.
""",
    responses={
        400: {"description": "Missing target department or same department"},
        404: {"description": "Queue not found"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def transfer_ticket(
    queue_number: str,
    data: TransferQueueRequest,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> TransferQueueResponse:
    try:
        return await service.transfer_ticket(
            db,
            queue_number,
            target_department=data.target_department,
            transferred_by=data.transferred_by,
            transfer_reason=data.transfer_reason,
            department=department,
            before_archive=_staff_limit("transfer", data.transferred_by),
        )
    except QueueServiceError as e:
        raise to_http_exception(e) from e


@router.delete(
    "/removeQueue/{queue_number}",
    response_model=RemoveQueueResponse,
    summary="Remove Ticket",
    description="Archive the ticket as `removed_by_admin` with who removed it and why.",
    responses={
        404: {"description": "Queue not found"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def remove_ticket(
    queue_number: str,
    data: RemoveQueueRequest | None = Body(None),
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> RemoveQueueResponse:
    data = data or RemoveQueueRequest()
    try:
        return await service.remove_ticket(
            db,
            queue_number,
            removed_by=data.removed_by,
            removal_reason=data.removal_reason,
            department=department,
            before_archive=_staff_limit("remove", data.removed_by),
        )
    except QueueServiceError as e:
        raise to_http_exception(e) from e


# ============================================
# Reporting
# ============================================


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Queue Statistics",
    description="""
Dashboard statistics for a department and local date (default today):

- completed tickets and average serving / waiting / total minutes
  (1-decimal strings, `"0.0"` when nothing was served)
- pending ticket count
- the ticket at the counter with an estimated remaining time
- the same aggregates for the week so far (weeks start on Sunday)
""",
    responses={400: {"description": "Missing department or date not in YYYY-MM-DD format"}},
)
async def get_statistics(
    department: str | None = DEPARTMENT_FILTER,
    date: str | None = Query(None, description="Local date, YYYY-MM-DD"),
    db: AsyncSession = Depends(get_db),
) -> StatisticsResponse:
    try:
        return await statistics.get_statistics(db, department, date)
    except QueueServiceError as e:
        raise to_http_exception(e) from e


@router.get(
    "/queue/archived",
    response_model=ArchivedListResponse,
    summary="Archived Tickets",
    description="""
Archive export, newest first. `IT` and `Administration` (or no department)
see every department.
""",
)
async def list_archived(
    department: str | None = DEPARTMENT_FILTER,
    date: str | None = Query(None, description="Local archive date, YYYY-MM-DD"),
    skip: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
) -> ArchivedListResponse:
    try:
        rows = await service.list_archived(
            db, department=department, date=date, skip=skip, limit=limit
        )
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    data = [ArchivedTicketResponse.model_validate(row) for row in rows]
    return ArchivedListResponse(success=True, data=data, count=len(data))
