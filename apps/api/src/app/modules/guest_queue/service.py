"""
Guest Queue Service Layer

Business logic for the walk-in queue. Orchestrates repository operations,
numbering and archival.

This module implements:
1. Ticket creation:
   - A guest holds at most one active ticket; rejoining archives the old one
   - Numbers come from the per-department daily counter
2. Counter flow:
   - accept -> finish (served), with skip / reintegrate in between
   - Accepting a skipped ticket reintegrates it implicitly
3. Staff exits:
   - transfer to another department (archive + new ticket)
   - remove (archive as removed_by_admin)
4. Guest exits:
   - leave the queue, or a manual archive by queue number / guest id

Transactions:
- Each operation is one transaction; the service commits or rolls back
- Archive + delete (+ re-create for transfer and rejoin) commit together
- Ticket rows are locked (SELECT ... FOR UPDATE) before being changed
- Unique-constraint races surface as QueueConflictError (409), other
  database failures as QueuePersistenceError (500)
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.guest_queue import archive, numbering, repository, statistics
from app.modules.guest_queue.errors import (
    AmbiguousQueueNumberError,
    InvalidTicketStateError,
    QueueConflictError,
    QueuePersistenceError,
    QueueServiceError,
    QueueValidationError,
    TicketNotFoundError,
)
from app.modules.guest_queue.helpers import (
    ALL_DEPARTMENT_VIEWERS,
    get_department_prefix,
    max_queue_suffix,
    parse_date_param,
    require_department,
    utc_now,
)
from app.modules.guest_queue.models import (
    ArchivedGuestTicket,
    ExitReason,
    GuestQueueTicket,
    TicketStatus,
)
from app.modules.guest_queue.repository import InvalidStatusTransitionError, set_status
from app.modules.guest_queue.schemas import (
    AcceptQueueResponse,
    ArchivedTicketResponse,
    CompletedQueue,
    CurrentlyServingResponse,
    FinishQueueResponse,
    NextQueue,
    ReintegrateQueueResponse,
    RemoveQueueResponse,
    SkipQueueResponse,
    TicketResponse,
    TimingInfo,
    TransferQueueResponse,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _transaction(db: AsyncSession, failure_message: str) -> AsyncIterator[None]:
    """
    Commit on success, roll back on any error.

    Database errors are translated into service errors carrying the raw
    driver message in ``detail``.
    """
    try:
        yield
        await db.commit()
    except QueueServiceError:
        await db.rollback()
        raise
    except InvalidStatusTransitionError as e:
        await db.rollback()
        raise InvalidTicketStateError(str(e)) from e
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"{failure_message}: constraint violation: {e.orig}")
        raise QueueConflictError(
            f"{failure_message}: the queue changed concurrently, please retry",
            detail=str(e.orig),
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"{failure_message}: {e}", exc_info=True)
        raise QueuePersistenceError(failure_message, detail=str(e)) from e
    except Exception:
        await db.rollback()
        raise


async def _get_ticket(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
    for_update: bool = False,
) -> GuestQueueTicket:
    """
    Resolve an active ticket by queue number.

    Raises:
        TicketNotFoundError: No active ticket has this number
        AmbiguousQueueNumberError: Several departments share the number
    """
    matches = await repository.find_by_queue_number(
        db, queue_number, department=department, for_update=for_update
    )
    if not matches:
        logger.warning(f"Queue lookup miss: {queue_number} (department={department})")
        raise TicketNotFoundError(queue_number)
    if len(matches) > 1:
        raise AmbiguousQueueNumberError(queue_number, [ticket.department for ticket in matches])
    return matches[0]


def _timing_info(archived: ArchivedGuestTicket) -> TimingInfo:
    return TimingInfo(
        waiting_time_minutes=archived.waiting_time_minutes,
        serving_time_minutes=archived.serving_time_minutes,
        total_time_minutes=archived.total_time_minutes,
    )


def _next_queue(ticket: GuestQueueTicket | None) -> NextQueue | None:
    if ticket is None:
        return None
    return NextQueue(queue_number=ticket.queue_number, created_at=ticket.created_at)


def _clear_skip(ticket: GuestQueueTicket) -> None:
    """Return a skipped ticket to its original place in the pending queue."""
    set_status(
        ticket,
        TicketStatus.PENDING,
        is_skipped=False,
        skipped_by=None,
        skipped_at=None,
    )


# ============================================
# Creation
# ============================================


async def create_ticket(
    db: AsyncSession,
    guest_user_id: UUID | None,
    department: str | None,
    now: datetime | None = None,
) -> GuestQueueTicket:
    """
    Put a guest in a department's queue.

    An existing active ticket of the same guest (any department) is archived
    with exit reason ``rejoined`` in the same transaction.

    Raises:
        QueueValidationError: If guest_user_id or department is missing
    """
    if guest_user_id is None or not department or not department.strip():
        raise QueueValidationError("Guest user ID and department are required")
    department = department.strip()
    now = now or utc_now()

    async with _transaction(db, "Error creating queue"):
        existing = await repository.get_by_guest_user(db, guest_user_id, for_update=True)
        if existing is not None:
            logger.info(
                f"Guest {guest_user_id} rejoining: archiving "
                f"{existing.department}/{existing.queue_number}"
            )
            await archive.archive_ticket(db, existing, ExitReason.REJOINED, now=now)

        queue_number = await numbering.generate_queue_number(db, department, now=now)
        ticket = GuestQueueTicket(
            guest_user_id=guest_user_id,
            department=department,
            queue_number=queue_number,
            status=TicketStatus.PENDING,
            created_at=now,
            is_skipped=False,
        )
        await repository.add_ticket(db, ticket)

    logger.info(f"Created queue {department}/{queue_number} for guest {guest_user_id}")
    return ticket


# ============================================
# Counter flow
# ============================================


async def accept_ticket(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
    now: datetime | None = None,
) -> AcceptQueueResponse:
    """
    Call a ticket to the counter.

    Skipped tickets are reintegrated first. ``serving_start_time`` is only
    stamped the first time a ticket is accepted.

    Raises:
        TicketNotFoundError: Unknown queue number
        InvalidTicketStateError: Ticket is already accepted
    """
    now = now or utc_now()

    async with _transaction(db, "Error accepting queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)

        if ticket.status == TicketStatus.SKIPPED:
            _clear_skip(ticket)

        if ticket.status != TicketStatus.PENDING:
            raise InvalidTicketStateError(
                f"Queue {queue_number} cannot be accepted.", ticket.status.value
            )

        set_status(
            ticket,
            TicketStatus.ACCEPTED,
            serving_start_time=ticket.serving_start_time or now,
        )
        await repository.save_ticket(db, ticket)

        next_ticket = await repository.get_next_pending(db, ticket.department)

    logger.info(f"Accepted queue {ticket.department}/{queue_number}")

    return AcceptQueueResponse(
        message=f"Queue {queue_number} accepted",
        next_queue_number=next_ticket.queue_number if next_ticket else None,
        serving_start_time=ticket.serving_start_time,
    )


async def finish_ticket(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
    now: datetime | None = None,
) -> FinishQueueResponse:
    """
    Mark a ticket served: archive it as ``completed`` and report the next
    pending ticket plus today's department statistics.

    The next ticket is only a hint; it stays pending until accepted.
    """
    now = now or utc_now()

    async with _transaction(db, "Error finishing queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)
        department = ticket.department

        archived = await archive.archive_ticket(db, ticket, ExitReason.SERVED, now=now)
        next_ticket = await repository.get_next_pending(db, department)

    logger.info(
        f"Finished queue {department}/{queue_number}: "
        f"waiting={archived.waiting_time_minutes}, serving={archived.serving_time_minutes}"
    )

    # Read after commit so the finished ticket is counted
    stats = await statistics.department_day_stats(db, department, archived.archive_date)

    return FinishQueueResponse(
        success=True,
        message=f"Queue {queue_number} finished successfully",
        completed_queue=CompletedQueue(
            queue_number=queue_number,
            waiting_time_minutes=archived.waiting_time_minutes,
            serving_time_minutes=archived.serving_time_minutes,
            total_time_minutes=archived.total_time_minutes,
        ),
        next_queue=_next_queue(next_ticket),
        stats=stats,
    )


async def skip_ticket(
    db: AsyncSession,
    queue_number: str,
    skipped_by: str | None = "admin",
    department: str | None = None,
    now: datetime | None = None,
) -> SkipQueueResponse:
    """
    Set a pending or accepted ticket aside.

    Raises:
        InvalidTicketStateError: Ticket is already skipped
    """
    now = now or utc_now()

    async with _transaction(db, "Error skipping queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)

        if ticket.status not in (TicketStatus.PENDING, TicketStatus.ACCEPTED):
            raise InvalidTicketStateError(
                f"Queue {queue_number} cannot be skipped.", ticket.status.value
            )

        set_status(
            ticket,
            TicketStatus.SKIPPED,
            is_skipped=True,
            skipped_by=skipped_by or "admin",
            skipped_at=now,
        )
        await repository.save_ticket(db, ticket)

        pending = await repository.list_pending(db, ticket.department)

    logger.info(f"Skipped queue {ticket.department}/{queue_number} by {ticket.skipped_by}")

    return SkipQueueResponse(
        message=f"Queue {queue_number} skipped successfully",
        skipped_queue=TicketResponse.model_validate(ticket),
        pending_queues=[TicketResponse.model_validate(item) for item in pending],
    )


async def reintegrate_ticket(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
) -> ReintegrateQueueResponse:
    """
    Put a skipped ticket back in the pending queue at its original position.

    No-op for tickets that are not skipped.
    """
    async with _transaction(db, "Error reintegrating queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)

        if ticket.status != TicketStatus.SKIPPED:
            return ReintegrateQueueResponse(
                message=f"Queue {queue_number} is not skipped",
                queue=TicketResponse.model_validate(ticket),
            )

        _clear_skip(ticket)
        await repository.save_ticket(db, ticket)

    logger.info(f"Reintegrated queue {ticket.department}/{queue_number}")

    return ReintegrateQueueResponse(
        message=f"Queue {queue_number} reintegrated successfully",
        queue=TicketResponse.model_validate(ticket),
    )


# ============================================
# Staff exits
# ============================================


async def transfer_ticket(
    db: AsyncSession,
    queue_number: str,
    target_department: str | None,
    transferred_by: str | None = "admin",
    transfer_reason: str | None = "Administrative transfer",
    department: str | None = None,
    now: datetime | None = None,
    before_archive: Callable[[], Awaitable[None]] | None = None,
) -> TransferQueueResponse:
    """
    Move a guest to another department's queue.

    The old ticket is archived as ``transferred`` and a new pending ticket is
    numbered in the target department, in one transaction. The new ticket
    joins the back of the target queue.

    ``before_archive`` runs once the ticket is found and the move validated;
    an exception from it aborts the transfer.

    Raises:
        QueueValidationError: Missing target, or target equals current department
    """
    if not target_department or not target_department.strip():
        raise QueueValidationError("Target department is required")
    target_department = target_department.strip()
    now = now or utc_now()

    async with _transaction(db, "Error transferring queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)

        if ticket.department == target_department:
            raise QueueValidationError("Cannot transfer to the same department")

        if before_archive is not None:
            await before_archive()

        source_department = ticket.department
        guest_user_id = ticket.guest_user_id

        archived = await archive.archive_ticket(
            db,
            ticket,
            ExitReason.TRANSFERRED,
            now=now,
            transferred_to=target_department,
            transferred_by=transferred_by or "admin",
            transfer_reason=transfer_reason or "Administrative transfer",
        )

        new_queue_number = await numbering.generate_queue_number(db, target_department, now=now)
        new_ticket = GuestQueueTicket(
            guest_user_id=guest_user_id,
            department=target_department,
            queue_number=new_queue_number,
            status=TicketStatus.PENDING,
            created_at=now,
            is_skipped=False,
            transferred_from=source_department,
            previous_queue_number=queue_number,
        )
        await repository.add_ticket(db, new_ticket)

    logger.info(
        f"Transferred {source_department}/{queue_number} -> "
        f"{target_department}/{new_queue_number} by {transferred_by}"
    )

    return TransferQueueResponse(
        success=True,
        message=f"Queue transferred from {source_department} to {target_department}",
        old_queue_number=queue_number,
        new_queue_number=new_queue_number,
        timing_info=_timing_info(archived),
        queue=TicketResponse.model_validate(new_ticket),
    )


async def remove_ticket(
    db: AsyncSession,
    queue_number: str,
    removed_by: str | None = "admin",
    removal_reason: str | None = "Administrative action",
    department: str | None = None,
    now: datetime | None = None,
    before_archive: Callable[[], Awaitable[None]] | None = None,
) -> RemoveQueueResponse:
    """
    Take a ticket out of the queue on the guest's behalf.

    ``before_archive`` runs once the ticket is found; an exception from it
    aborts the removal.
    """
    now = now or utc_now()

    async with _transaction(db, "Error removing queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)
        department = ticket.department
        if before_archive is not None:
            await before_archive()

        archived = await archive.archive_ticket(
            db,
            ticket,
            ExitReason.REMOVED_BY_ADMIN,
            now=now,
            removed_by=removed_by or "admin",
            removal_reason=removal_reason or "Administrative action",
        )

        remaining = await repository.count_pending(db, department)
        next_ticket = await repository.get_next_pending(db, department)

    logger.info(f"Removed queue {department}/{queue_number} by {removed_by}: {removal_reason}")

    return RemoveQueueResponse(
        message=f"Queue {queue_number} removed successfully",
        removed_queue=ArchivedTicketResponse.model_validate(archived),
        remaining_queue_count=remaining,
        next_queue=_next_queue(next_ticket),
        timing_info=_timing_info(archived),
    )


# ============================================
# Guest exits
# ============================================


async def leave_queue(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
    now: datetime | None = None,
) -> ArchivedGuestTicket:
    """Guest cancels their ticket from the kiosk."""
    async with _transaction(db, "Error deleting queue"):
        ticket = await _get_ticket(db, queue_number, department, for_update=True)
        archived = await archive.archive_ticket(db, ticket, ExitReason.USER_LEFT, now=now)

    logger.info(f"Guest left queue {archived.department}/{queue_number}")
    return archived


async def archive_ticket_manually(
    db: AsyncSession,
    queue_number: str | None = None,
    guest_user_id: UUID | None = None,
    department: str | None = None,
    exit_reason: ExitReason = ExitReason.USER_LEFT,
    now: datetime | None = None,
) -> ArchivedGuestTicket:
    """
    Archive an active ticket found by queue number or by guest.

    Raises:
        QueueValidationError: Neither identifier given
        TicketNotFoundError: No matching active ticket
    """
    if not queue_number and guest_user_id is None:
        raise QueueValidationError("Either queueNumber or guestUserId is required")

    async with _transaction(db, "Error archiving queue data"):
        if queue_number:
            ticket = await _get_ticket(db, queue_number, department, for_update=True)
        else:
            ticket = await repository.get_by_guest_user(db, guest_user_id, for_update=True)
            if ticket is None:
                raise TicketNotFoundError()

        archived = await archive.archive_ticket(db, ticket, exit_reason, now=now)

    return archived


# ============================================
# Reads
# ============================================


async def get_ticket(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
) -> GuestQueueTicket:
    return await _get_ticket(db, queue_number, department)


async def get_ticket_status(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
) -> TicketStatus:
    """
    Status the kiosk polls for. A number that is no longer active reads as
    pending, matching what the kiosk shows until it refreshes.
    """
    try:
        ticket = await _get_ticket(db, queue_number, department)
    except TicketNotFoundError:
        return TicketStatus.PENDING
    return ticket.status


async def list_pending(db: AsyncSession, department: str | None) -> list[GuestQueueTicket]:
    return await repository.list_pending(db, require_department(department))


async def list_skipped(db: AsyncSession, department: str | None) -> list[GuestQueueTicket]:
    return await repository.list_skipped(db, require_department(department))


async def get_currently_serving(
    db: AsyncSession,
    department: str | None,
) -> CurrentlyServingResponse:
    ticket = await repository.get_currently_serving(db, require_department(department))
    if ticket is None:
        return CurrentlyServingResponse()
    return CurrentlyServingResponse(
        id=ticket.id,
        guest_user_id=ticket.guest_user_id,
        queue_number=ticket.queue_number,
        serving_start_time=ticket.serving_start_time,
    )


async def get_current_queue_number(db: AsyncSession, department: str | None) -> int:
    """Highest numeric suffix among the department's pending tickets (0 when none)."""
    department = require_department(department)
    numbers = await repository.list_pending_queue_numbers(db, department)
    return max_queue_suffix(numbers, get_department_prefix(department))


async def list_archived(
    db: AsyncSession,
    department: str | None = None,
    date: str | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[ArchivedGuestTicket]:
    """
    Archive export, newest first.

    IT and Administration (or no department) see every department.
    """
    if department is not None:
        department = department.strip() or None
    if department in ALL_DEPARTMENT_VIEWERS:
        department = None

    archive_date = parse_date_param(date) if date else None

    return await repository.list_archived(
        db,
        department=department,
        archive_date=archive_date,
        skip=skip,
        limit=limit,
    )
