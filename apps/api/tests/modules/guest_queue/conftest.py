"""
Fixtures for guest queue tests.

Times are fixed in UTC; the office timezone defaults to Asia/Manila (UTC+8),
so 2026-03-04 02:00 UTC is 10:00 local on Wednesday 2026-03-04.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.modules.guest_queue.archive import build_archive_record
from app.modules.guest_queue.models import ExitReason, GuestQueueTicket, TicketStatus


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def now():
    return datetime(2026, 3, 4, 2, 0, tzinfo=UTC)


@pytest.fixture
def make_ticket(now):
    """Factory for transient active tickets."""

    def _make(
        queue_number: str = "AD1",
        department: str = "Admissions",
        status: TicketStatus = TicketStatus.PENDING,
        created_minutes_ago: float = 20,
        serving_minutes_ago: float | None = None,
        **overrides,
    ) -> GuestQueueTicket:
        fields = {
            "id": uuid4(),
            "guest_user_id": uuid4(),
            "department": department,
            "queue_number": queue_number,
            "status": status,
            "created_at": now - timedelta(minutes=created_minutes_ago),
            "serving_start_time": (
                now - timedelta(minutes=serving_minutes_ago)
                if serving_minutes_ago is not None
                else None
            ),
            "is_skipped": status == TicketStatus.SKIPPED,
            "skipped_by": None,
            "skipped_at": None,
            "transferred_from": None,
            "previous_queue_number": None,
        }
        fields.update(overrides)
        return GuestQueueTicket(**fields)

    return _make


@pytest.fixture
def make_archived(now):
    """Factory turning a ticket into the archive row archival would write."""

    def _make(ticket: GuestQueueTicket, exit_reason: ExitReason, **metadata):
        archived = build_archive_record(ticket, exit_reason, now, **metadata)
        archived.id = uuid4()
        return archived

    return _make
