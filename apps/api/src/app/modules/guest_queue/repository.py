"""
Guest Queue Repository

Database operations for active tickets, archived tickets and the daily
queue counters.

Design Principles:
- Only database operations, no business rules beyond the status state machine
- Functions add/flush but never commit; the service owns each transaction
- Ticket lookups used before a write take a row lock (SELECT ... FOR UPDATE)
- Day filters compare local YYYY-MM-DD strings produced by helpers.to_local_date
"""

from datetime import datetime
from decimal import Decimal
from typing import NamedTuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    ArchivedGuestTicket,
    ArchiveStatus,
    GuestQueueTicket,
    QueueCounter,
    TicketStatus,
)

# Valid status transitions for tickets that stay in the active queue.
# Leaving the queue (finish, transfer, remove, leave) is always allowed and
# goes through archival instead of a status update.
VALID_STATUS_TRANSITIONS: dict[TicketStatus, set[TicketStatus]] = {
    TicketStatus.PENDING: {
        TicketStatus.ACCEPTED,  # Called to a counter
        TicketStatus.SKIPPED,  # Did not show up when called
    },
    TicketStatus.ACCEPTED: {
        TicketStatus.SKIPPED,  # Stepped away mid-service
    },
    TicketStatus.SKIPPED: {
        TicketStatus.PENDING,  # Reintegrated at original position
        TicketStatus.ACCEPTED,  # Accepted straight from the skipped list
    },
    # Terminal states
    TicketStatus.SERVED: set(),
    TicketStatus.LEFT: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: TicketStatus, new_status: TicketStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def set_status(ticket: GuestQueueTicket, status: TicketStatus, **kwargs) -> GuestQueueTicket:
    """
    Move an active ticket to ``status`` and set any extra columns.

    Raises:
        InvalidStatusTransitionError: If the state machine forbids the move
    """
    current_status = ticket.status
    valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())

    if status != current_status and status not in valid_transitions:
        raise InvalidStatusTransitionError(current_status, status)

    ticket.status = status
    for key, value in kwargs.items():
        setattr(ticket, key, value)

    return ticket


# ============================================
# Active tickets
# ============================================


async def add_ticket(db: AsyncSession, ticket: GuestQueueTicket) -> GuestQueueTicket:
    db.add(ticket)
    await db.flush()
    return ticket


async def save_ticket(db: AsyncSession, ticket: GuestQueueTicket) -> GuestQueueTicket:
    """Flush pending changes so following queries in the transaction see them."""
    await db.flush()
    return ticket


async def delete_ticket(db: AsyncSession, ticket: GuestQueueTicket) -> None:
    await db.delete(ticket)
    await db.flush()


async def find_by_queue_number(
    db: AsyncSession,
    queue_number: str,
    department: str | None = None,
    for_update: bool = False,
) -> list[GuestQueueTicket]:
    """All active tickets carrying ``queue_number`` (one per department at most)."""
    query = select(GuestQueueTicket).where(GuestQueueTicket.queue_number == queue_number)
    if department:
        query = query.where(GuestQueueTicket.department == department)
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_by_guest_user(
    db: AsyncSession,
    guest_user_id: UUID,
    for_update: bool = False,
) -> GuestQueueTicket | None:
    """The guest's active ticket, in any department."""
    query = select(GuestQueueTicket).where(GuestQueueTicket.guest_user_id == guest_user_id)
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_pending(db: AsyncSession, department: str) -> list[GuestQueueTicket]:
    """Pending tickets in FIFO order (creation time, then id for ties)."""
    result = await db.execute(
        select(GuestQueueTicket)
        .where(
            GuestQueueTicket.department == department,
            GuestQueueTicket.status == TicketStatus.PENDING,
        )
        .order_by(GuestQueueTicket.created_at.asc(), GuestQueueTicket.id.asc())
    )
    return list(result.scalars().all())


async def get_next_pending(db: AsyncSession, department: str) -> GuestQueueTicket | None:
    """Head of the department's pending queue."""
    result = await db.execute(
        select(GuestQueueTicket)
        .where(
            GuestQueueTicket.department == department,
            GuestQueueTicket.status == TicketStatus.PENDING,
        )
        .order_by(GuestQueueTicket.created_at.asc(), GuestQueueTicket.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_pending(db: AsyncSession, department: str) -> int:
    result = await db.execute(
        select(func.count(GuestQueueTicket.id)).where(
            GuestQueueTicket.department == department,
            GuestQueueTicket.status == TicketStatus.PENDING,
        )
    )
    return result.scalar_one()


async def get_currently_serving(db: AsyncSession, department: str) -> GuestQueueTicket | None:
    """Most recently accepted ticket of the department."""
    result = await db.execute(
        select(GuestQueueTicket)
        .where(
            GuestQueueTicket.department == department,
            GuestQueueTicket.status == TicketStatus.ACCEPTED,
        )
        .order_by(GuestQueueTicket.serving_start_time.desc().nulls_last())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_skipped(db: AsyncSession, department: str) -> list[GuestQueueTicket]:
    """Skipped tickets, most recently skipped first."""
    result = await db.execute(
        select(GuestQueueTicket)
        .where(
            GuestQueueTicket.department == department,
            GuestQueueTicket.is_skipped.is_(True),
        )
        .order_by(GuestQueueTicket.skipped_at.desc().nulls_last())
    )
    return list(result.scalars().all())


async def list_active_queue_numbers(db: AsyncSession, department: str) -> list[str]:
    result = await db.execute(
        select(GuestQueueTicket.queue_number).where(GuestQueueTicket.department == department)
    )
    return list(result.scalars().all())


async def list_pending_queue_numbers(db: AsyncSession, department: str) -> list[str]:
    result = await db.execute(
        select(GuestQueueTicket.queue_number).where(
            GuestQueueTicket.department == department,
            GuestQueueTicket.status == TicketStatus.PENDING,
        )
    )
    return list(result.scalars().all())


async def list_created_before(db: AsyncSession, before: datetime) -> list[GuestQueueTicket]:
    """Active tickets created before ``before`` (leftovers from an earlier day)."""
    result = await db.execute(
        select(GuestQueueTicket)
        .where(GuestQueueTicket.created_at < before)
        .order_by(GuestQueueTicket.created_at.asc())
    )
    return list(result.scalars().all())


async def list_already_archived(db: AsyncSession) -> list[GuestQueueTicket]:
    """Active tickets that also have an archive row (archive+delete interrupted)."""
    archived_ids = select(ArchivedGuestTicket.original_queue_id)
    result = await db.execute(
        select(GuestQueueTicket).where(GuestQueueTicket.id.in_(archived_ids))
    )
    return list(result.scalars().all())


# ============================================
# Queue counters
# ============================================


async def list_archived_queue_numbers_for_day(
    db: AsyncSession,
    department: str,
    archive_date: str,
) -> list[str]:
    result = await db.execute(
        select(ArchivedGuestTicket.original_queue_number).where(
            ArchivedGuestTicket.department == department,
            ArchivedGuestTicket.archive_date == archive_date,
        )
    )
    return list(result.scalars().all())


async def next_counter_value(
    db: AsyncSession,
    department: str,
    counter_date: str,
    floor: int,
) -> int:
    """
    Atomically advance the (department, day) counter and return the new value.

    The value is never lower than ``floor + 1``. Concurrent callers serialize
    on the counter row until their transaction ends.
    """
    stmt = pg_insert(QueueCounter).values(
        department=department,
        counter_date=counter_date,
        last_number=floor + 1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[QueueCounter.department, QueueCounter.counter_date],
        set_={
            "last_number": func.greatest(QueueCounter.last_number + 1, floor + 1),
            "updated_at": func.now(),
        },
    ).returning(QueueCounter.last_number)

    result = await db.execute(stmt)
    return result.scalar_one()


# ============================================
# Archived tickets
# ============================================


async def add_archive(db: AsyncSession, archived: ArchivedGuestTicket) -> ArchivedGuestTicket:
    db.add(archived)
    await db.flush()
    return archived


async def get_archive_by_original_id(
    db: AsyncSession,
    original_queue_id: UUID,
) -> ArchivedGuestTicket | None:
    result = await db.execute(
        select(ArchivedGuestTicket)
        .where(ArchivedGuestTicket.original_queue_id == original_queue_id)
        .order_by(ArchivedGuestTicket.archived_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


class ServedAggregate(NamedTuple):
    total_served: int
    avg_serving_time: Decimal | None
    avg_waiting_time: Decimal | None
    avg_total_time: Decimal | None


async def aggregate_served(
    db: AsyncSession,
    department: str,
    start_date: str,
    end_date: str,
) -> ServedAggregate:
    """Count and average durations of completed tickets archived in [start_date, end_date]."""
    result = await db.execute(
        select(
            func.count(ArchivedGuestTicket.id),
            func.avg(ArchivedGuestTicket.serving_time_minutes),
            func.avg(ArchivedGuestTicket.waiting_time_minutes),
            func.avg(ArchivedGuestTicket.total_time_minutes),
        ).where(
            ArchivedGuestTicket.department == department,
            ArchivedGuestTicket.status == ArchiveStatus.COMPLETED,
            ArchivedGuestTicket.archive_date >= start_date,
            ArchivedGuestTicket.archive_date <= end_date,
        )
    )
    count, avg_serving, avg_waiting, avg_total = result.one()
    return ServedAggregate(count or 0, avg_serving, avg_waiting, avg_total)


async def list_archived(
    db: AsyncSession,
    department: str | None = None,
    archive_date: str | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[ArchivedGuestTicket]:
    """Archived tickets, newest first, optionally filtered by department and day."""
    query = select(ArchivedGuestTicket)
    if department:
        query = query.where(ArchivedGuestTicket.department == department)
    if archive_date:
        query = query.where(ArchivedGuestTicket.archive_date == archive_date)

    query = query.order_by(ArchivedGuestTicket.archived_at.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
