"""
Ticket Archival

Moves a ticket from the active queue to the archive: the archive row and the
delete happen in the caller's transaction, so a ticket is never visible in
both stores after commit.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.guest_queue import repository
from app.modules.guest_queue.helpers import (
    EXITS_ENDING_SERVICE,
    archive_status_for,
    build_unique_archive_id,
    compute_exit_metrics,
    to_local_date,
    utc_now,
)
from app.modules.guest_queue.models import ArchivedGuestTicket, ExitReason, GuestQueueTicket

logger = logging.getLogger(__name__)

ARCHIVE_METADATA_FIELDS = frozenset(
    {"transferred_to", "transferred_by", "transfer_reason", "removed_by", "removal_reason"}
)


def build_archive_record(
    ticket: GuestQueueTicket,
    exit_reason: ExitReason,
    now: datetime,
    archive_date: str | None = None,
    **metadata: str | None,
) -> ArchivedGuestTicket:
    """
    Snapshot an active ticket with its exit metrics. Does not touch the session.

    ``archive_date`` defaults to the local date of ``now``.
    """
    unknown = set(metadata) - ARCHIVE_METADATA_FIELDS
    if unknown:
        raise TypeError(f"Unknown archive metadata: {sorted(unknown)}")

    metrics = compute_exit_metrics(ticket.created_at, ticket.serving_start_time, now)

    return ArchivedGuestTicket(
        original_queue_id=ticket.id,
        original_queue_number=ticket.queue_number,
        guest_user_id=ticket.guest_user_id,
        department=ticket.department,
        ticket_status=ticket.status,
        created_at=ticket.created_at,
        serving_start_time=ticket.serving_start_time,
        is_skipped=bool(ticket.is_skipped),
        skipped_by=ticket.skipped_by,
        skipped_at=ticket.skipped_at,
        transferred_from=ticket.transferred_from,
        previous_queue_number=ticket.previous_queue_number,
        archived_at=now,
        archive_date=archive_date or to_local_date(now),
        exit_reason=exit_reason,
        status=archive_status_for(exit_reason),
        serving_end_time=now if exit_reason in EXITS_ENDING_SERVICE else None,
        unique_archive_id=build_unique_archive_id(ticket.queue_number, now),
        waiting_time_minutes=metrics.waiting_time_minutes,
        serving_time_minutes=metrics.serving_time_minutes,
        total_time_minutes=metrics.total_time_minutes,
        **metadata,
    )


async def archive_ticket(
    db: AsyncSession,
    ticket: GuestQueueTicket,
    exit_reason: ExitReason,
    now: datetime | None = None,
    archive_date: str | None = None,
    **metadata: str | None,
) -> ArchivedGuestTicket:
    """
    Archive ``ticket`` and delete it from the active queue (flush, no commit).

    If an archive row for this ticket already exists, that copy wins: the
    active row is deleted and the existing archive row returned.

    Args:
        db: Database session
        ticket: Active ticket, ideally loaded with a row lock
        exit_reason: Why the ticket leaves the queue
        now: Archival instant (defaults to current UTC time)
        archive_date: Local day partition (defaults to the local date of ``now``)
        **metadata: Transfer or removal fields copied onto the archive row

    Returns:
        The archive row
    """
    existing = await repository.get_archive_by_original_id(db, ticket.id)
    if existing is not None:
        logger.warning(
            f"Ticket {ticket.department}/{ticket.queue_number} already archived as "
            f"{existing.unique_archive_id}; removing leftover active row"
        )
        await repository.delete_ticket(db, ticket)
        return existing

    archived = build_archive_record(
        ticket, exit_reason, now or utc_now(), archive_date=archive_date, **metadata
    )
    await repository.add_archive(db, archived)
    await repository.delete_ticket(db, ticket)

    logger.info(
        f"Archived {ticket.department}/{ticket.queue_number}: exit_reason={exit_reason.value}, "
        f"status={archived.status.value}, total={archived.total_time_minutes}"
    )
    return archived
