"""
Guest Queue Router

Kiosk-facing endpoints: guests take a ticket, watch the queue and leave it.
These endpoints are public (walk-in guests have no account).

Endpoints:
- POST /guest-queue/create - Take a ticket
- DELETE /guest-queue/delete/{queueNumber} - Leave the queue
- POST /guest-queue/archive - Archive a ticket by queue number or guest
- GET /guest-queue/status/{queueNumber} - Poll a ticket's status
- GET /guest-queue/getGuest/{queueNumber} - Get a ticket
- GET /guest-queue/pending - Pending tickets of a department (FIFO)
- GET /guest-queue/currentlyServing - Ticket at the department's counter
- GET /guest-queue/getCurrentQueue - Highest pending number of a department

Queue numbers are unique per department. Free-text departments can share a
prefix, so every lookup by number accepts an optional ``department`` query
parameter to disambiguate.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.guest_queue import service
from app.modules.guest_queue.errors import QueueServiceError, to_http_exception
from app.modules.guest_queue.schemas import (
    ArchivedTicketResponse,
    ArchiveTicketRequest,
    CreateTicketRequest,
    CurrentlyServingResponse,
    CurrentQueueNumberResponse,
    TicketResponse,
    TicketStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DEPARTMENT_FILTER = Query(None, description="Department name (Admissions, Registrar, ...)")
DEPARTMENT_HINT = Query(
    None, description="Department of the ticket, needed only when prefixes collide"
)


@router.post(
    "/create",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Take a Queue Ticket",
    description="""
Put a guest in a department's queue and return the new ticket.

**Rejoin:** a guest holds at most one active ticket. If the guest already has
one (in any department) it is archived with exit reason `rejoined` first.

**Numbering:** `<prefix><n>`, restarting at 1 every local day per department
(Admissions=AD, Registrar=RE, Accounting=AC, others: first two letters).
""",
    responses={
        201: {"description": "Ticket created", "model": TicketResponse},
        400: {
            "description": "Missing guest user ID or department",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "VALIDATION_ERROR",
                            "message": "Guest user ID and department are required",
                        }
                    }
                }
            },
        },
        409: {"description": "Concurrent create for the same guest"},
        500: {"description": "Database error"},
    },
)
async def create_ticket(
    data: CreateTicketRequest,
    db: AsyncSession = Depends(get_db),
) -> TicketResponse:
    try:
        ticket = await service.create_ticket(db, data.guest_user_id, data.department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return TicketResponse.model_validate(ticket)


@router.delete(
    "/delete/{queue_number}",
    response_model=ArchivedTicketResponse,
    summary="Leave the Queue",
    description="Archive the ticket with exit reason `user_left` and remove it from the queue.",
    responses={404: {"description": "Queue not found"}},
)
async def leave_queue(
    queue_number: str,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> ArchivedTicketResponse:
    try:
        archived = await service.leave_queue(db, queue_number, department=department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return ArchivedTicketResponse.model_validate(archived)


@router.post(
    "/archive",
    response_model=ArchivedTicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Archive a Ticket",
    description="""
Archive the active ticket identified by `queueNumber` or `guestUserId`.

`exitReason` defaults to `user_left`. The archive status is derived from it
(`served` -> `completed`, `transferred` -> `transferred`,
`removed_by_admin` -> `removed_by_admin`, anything else -> `left`).
""",
    responses={
        400: {"description": "Neither queueNumber nor guestUserId given"},
        404: {"description": "No active ticket found"},
    },
)
async def archive_ticket(
    data: ArchiveTicketRequest,
    db: AsyncSession = Depends(get_db),
) -> ArchivedTicketResponse:
    try:
        archived = await service.archive_ticket_manually(
            db,
            queue_number=data.queue_number,
            guest_user_id=data.guest_user_id,
            department=data.department,
            exit_reason=data.exit_reason,
        )
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    logger.info(
        f"Manually archived {archived.department}/{archived.original_queue_number} "
        f"({archived.exit_reason.value})"
    )
    return ArchivedTicketResponse.model_validate(archived)


@router.get(
    "/status/{queue_number}",
    response_model=TicketStatusResponse,
    summary="Ticket Status",
    description="Status of a ticket. Numbers no longer in the queue read as `pending`.",
)
async def get_ticket_status(
    queue_number: str,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> TicketStatusResponse:
    try:
        ticket_status = await service.get_ticket_status(db, queue_number, department=department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return TicketStatusResponse(status=ticket_status)


@router.get(
    "/getGuest/{queue_number}",
    response_model=TicketResponse,
    summary="Get Ticket",
    responses={404: {"description": "Queue not found"}},
)
async def get_ticket(
    queue_number: str,
    department: str | None = DEPARTMENT_HINT,
    db: AsyncSession = Depends(get_db),
) -> TicketResponse:
    try:
        ticket = await service.get_ticket(db, queue_number, department=department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return TicketResponse.model_validate(ticket)


@router.get(
    "/pending",
    response_model=list[TicketResponse],
    summary="Pending Tickets",
    description="Pending tickets of a department, oldest first (serving order).",
)
async def list_pending(
    department: str | None = DEPARTMENT_FILTER,
    db: AsyncSession = Depends(get_db),
) -> list[TicketResponse]:
    try:
        tickets = await service.list_pending(db, department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return [TicketResponse.model_validate(ticket) for ticket in tickets]


@router.get(
    "/currentlyServing",
    response_model=CurrentlyServingResponse,
    summary="Currently Serving",
    description=(
        "The accepted ticket of a department. All fields are null when the counter is idle."
    ),
)
async def get_currently_serving(
    department: str | None = DEPARTMENT_FILTER,
    db: AsyncSession = Depends(get_db),
) -> CurrentlyServingResponse:
    try:
        return await service.get_currently_serving(db, department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e


@router.get(
    "/getCurrentQueue",
    response_model=CurrentQueueNumberResponse,
    summary="Current Queue Number",
    description="Highest numeric suffix among the department's pending tickets, 0 when empty.",
)
async def get_current_queue_number(
    department: str | None = DEPARTMENT_FILTER,
    db: AsyncSession = Depends(get_db),
) -> CurrentQueueNumberResponse:
    try:
        current = await service.get_current_queue_number(db, department)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return CurrentQueueNumberResponse(current_queue_number=current)
