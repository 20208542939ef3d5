"""
Unit tests for the guest queue service layer.

These tests cover:
- Ticket creation and rejoining
- Accept / finish / skip / reintegrate
- Transfer and removal by staff
- Guest exits and manual archival
- Reads (status, currently serving, current number, archive export)
- Transaction handling (commit, rollback, database error translation)
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.modules.guest_queue.errors import (
    AmbiguousQueueNumberError,
    InvalidTicketStateError,
    QueueConflictError,
    QueuePersistenceError,
    QueueValidationError,
    TicketNotFoundError,
)
from app.modules.guest_queue.models import ExitReason, TicketStatus
from app.modules.guest_queue.schemas import DepartmentDayStats
from app.modules.guest_queue.service import (
    accept_ticket,
    archive_ticket_manually,
    create_ticket,
    finish_ticket,
    get_current_queue_number,
    get_currently_serving,
    get_ticket_status,
    leave_queue,
    list_archived,
    reintegrate_ticket,
    remove_ticket,
    skip_ticket,
    transfer_ticket,
)


def _assign_id(db, ticket):
    # Stands in for the flush that applies the primary key default
    ticket.id = ticket.id or uuid4()
    return ticket


@pytest.fixture
def mock_repo():
    with patch("app.modules.guest_queue.service.repository") as repo:
        repo.find_by_queue_number = AsyncMock(return_value=[])
        repo.get_by_guest_user = AsyncMock(return_value=None)
        repo.add_ticket = AsyncMock(side_effect=_assign_id)
        repo.save_ticket = AsyncMock(side_effect=lambda db, ticket: ticket)
        repo.get_next_pending = AsyncMock(return_value=None)
        repo.list_pending = AsyncMock(return_value=[])
        repo.list_skipped = AsyncMock(return_value=[])
        repo.count_pending = AsyncMock(return_value=0)
        repo.get_currently_serving = AsyncMock(return_value=None)
        repo.list_pending_queue_numbers = AsyncMock(return_value=[])
        repo.list_archived = AsyncMock(return_value=[])
        yield repo


@pytest.fixture
def mock_archive():
    with patch("app.modules.guest_queue.service.archive") as archive:
        archive.archive_ticket = AsyncMock()
        yield archive


@pytest.fixture
def mock_numbering():
    with patch("app.modules.guest_queue.service.numbering") as numbering:
        numbering.generate_queue_number = AsyncMock(return_value="AD1")
        yield numbering


@pytest.fixture
def mock_statistics():
    with patch("app.modules.guest_queue.service.statistics") as statistics:
        statistics.department_day_stats = AsyncMock(
            return_value=DepartmentDayStats(
                date="2026-03-04",
                total_served=3,
                avg_serving_time="12.0",
                avg_waiting_time="4.5",
                avg_total_time="16.5",
            )
        )
        yield statistics


class TestCreateTicket:
    """Tests for create_ticket function."""

    @pytest.mark.asyncio
    async def test_create_ticket_success(
        self, mock_db, mock_repo, mock_archive, mock_numbering, now
    ):
        guest_user_id = uuid4()
        mock_numbering.generate_queue_number.return_value = "AD3"

        ticket = await create_ticket(mock_db, guest_user_id, " Admissions ", now=now)

        assert ticket.queue_number == "AD3"
        assert ticket.department == "Admissions"
        assert ticket.guest_user_id == guest_user_id
        assert ticket.status == TicketStatus.PENDING
        assert ticket.created_at == now
        assert ticket.is_skipped is False
        mock_numbering.generate_queue_number.assert_awaited_once_with(
            mock_db, "Admissions", now=now
        )
        mock_archive.archive_ticket.assert_not_called()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejoin_archives_existing_ticket(
        self, mock_db, mock_repo, mock_archive, mock_numbering, make_ticket, now
    ):
        """A guest with a ticket elsewhere loses it when taking a new one."""
        existing = make_ticket(queue_number="RE4", department="Registrar")
        mock_repo.get_by_guest_user.return_value = existing

        ticket = await create_ticket(mock_db, existing.guest_user_id, "Admissions", now=now)

        mock_archive.archive_ticket.assert_awaited_once_with(
            mock_db, existing, ExitReason.REJOINED, now=now
        )
        assert ticket.department == "Admissions"
        assert ticket.guest_user_id == existing.guest_user_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("guest_user_id", "department"),
        [(None, "Admissions"), (uuid4(), ""), (uuid4(), "   "), (uuid4(), None)],
    )
    async def test_missing_fields_are_rejected(
        self, mock_db, mock_repo, mock_numbering, guest_user_id, department
    ):
        with pytest.raises(QueueValidationError) as exc_info:
            await create_ticket(mock_db, guest_user_id, department)

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Guest user ID and department are required"
        mock_numbering.generate_queue_number.assert_not_called()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_create_is_a_conflict(
        self, mock_db, mock_repo, mock_archive, mock_numbering, now
    ):
        mock_repo.add_ticket.side_effect = IntegrityError(
            "INSERT", {}, Exception("duplicate key value violates unique constraint")
        )

        with pytest.raises(QueueConflictError) as exc_info:
            await create_ticket(mock_db, uuid4(), "Admissions", now=now)

        assert exc_info.value.status_code == 409
        assert "duplicate key" in exc_info.value.detail
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_error_carries_raw_message(
        self, mock_db, mock_repo, mock_archive, mock_numbering, now
    ):
        mock_numbering.generate_queue_number.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(QueuePersistenceError) as exc_info:
            await create_ticket(mock_db, uuid4(), "Admissions", now=now)

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Error creating queue"
        assert "connection lost" in exc_info.value.detail
        mock_db.rollback.assert_awaited_once()


class TestAcceptTicket:
    """Tests for accept_ticket function."""

    @pytest.mark.asyncio
    async def test_accept_pending_ticket(self, mock_db, mock_repo, make_ticket, now):
        ticket = make_ticket(queue_number="AD1")
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_repo.get_next_pending.return_value = make_ticket(queue_number="AD2")

        result = await accept_ticket(mock_db, "AD1", now=now)

        assert ticket.status == TicketStatus.ACCEPTED
        assert ticket.serving_start_time == now
        assert result.message == "Queue AD1 accepted"
        assert result.next_queue_number == "AD2"
        assert result.serving_start_time == now
        mock_repo.find_by_queue_number.assert_awaited_once_with(
            mock_db, "AD1", department=None, for_update=True
        )
        mock_repo.save_ticket.assert_awaited_once_with(mock_db, ticket)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_accept_skipped_ticket_reintegrates_it(
        self, mock_db, mock_repo, make_ticket, now
    ):
        ticket = make_ticket(status=TicketStatus.SKIPPED, skipped_by="admin", skipped_at=now)
        mock_repo.find_by_queue_number.return_value = [ticket]

        result = await accept_ticket(mock_db, "AD1", now=now)

        assert ticket.status == TicketStatus.ACCEPTED
        assert ticket.is_skipped is False
        assert ticket.skipped_by is None
        assert ticket.skipped_at is None
        assert result.next_queue_number is None

    @pytest.mark.asyncio
    async def test_serving_start_is_kept_on_second_acceptance(
        self, mock_db, mock_repo, make_ticket, now
    ):
        ticket = make_ticket(status=TicketStatus.SKIPPED, serving_minutes_ago=6)
        first_start = ticket.serving_start_time
        mock_repo.find_by_queue_number.return_value = [ticket]

        result = await accept_ticket(mock_db, "AD1", now=now)

        assert ticket.serving_start_time == first_start
        assert result.serving_start_time == first_start

    @pytest.mark.asyncio
    async def test_accepting_accepted_ticket_fails(self, mock_db, mock_repo, make_ticket, now):
        mock_repo.find_by_queue_number.return_value = [
            make_ticket(status=TicketStatus.ACCEPTED, serving_minutes_ago=2)
        ]

        with pytest.raises(InvalidTicketStateError) as exc_info:
            await accept_ticket(mock_db, "AD1", now=now)

        assert exc_info.value.status_code == 409
        assert "Current status: accepted" in exc_info.value.message
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_queue_number(self, mock_db, mock_repo):
        with pytest.raises(TicketNotFoundError) as exc_info:
            await accept_ticket(mock_db, "AD99")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Queue AD99 not found"

    @pytest.mark.asyncio
    async def test_number_shared_by_two_departments(self, mock_db, mock_repo, make_ticket):
        """Free-text departments can share a prefix."""
        mock_repo.find_by_queue_number.return_value = [
            make_ticket(queue_number="LI1", department="Library"),
            make_ticket(queue_number="LI1", department="Lighting"),
        ]

        with pytest.raises(AmbiguousQueueNumberError) as exc_info:
            await accept_ticket(mock_db, "LI1")

        assert exc_info.value.status_code == 409
        assert "Library" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_department_hint_is_passed_to_lookup(self, mock_db, mock_repo, make_ticket, now):
        mock_repo.find_by_queue_number.return_value = [
            make_ticket(queue_number="LI1", department="Library")
        ]

        await accept_ticket(mock_db, "LI1", department="Library", now=now)

        mock_repo.find_by_queue_number.assert_awaited_once_with(
            mock_db, "LI1", department="Library", for_update=True
        )


class TestFinishTicket:
    """Tests for finish_ticket function."""

    @pytest.mark.asyncio
    async def test_finish_reports_timings_next_and_stats(
        self, mock_db, mock_repo, mock_archive, mock_statistics, make_ticket, make_archived, now
    ):
        ticket = make_ticket(
            status=TicketStatus.ACCEPTED, created_minutes_ago=20, serving_minutes_ago=15
        )
        next_ticket = make_ticket(queue_number="AD2", created_minutes_ago=10)
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_repo.get_next_pending.return_value = next_ticket
        mock_archive.archive_ticket.return_value = make_archived(ticket, ExitReason.SERVED)

        result = await finish_ticket(mock_db, "AD1", now=now)

        assert result.success is True
        assert result.message == "Queue AD1 finished successfully"
        assert result.completed_queue.queue_number == "AD1"
        assert result.completed_queue.waiting_time_minutes == "5.00"
        assert result.completed_queue.serving_time_minutes == "15.00"
        assert result.completed_queue.total_time_minutes == "20.00"
        assert result.next_queue.queue_number == "AD2"
        assert result.next_queue.created_at == next_ticket.created_at
        assert result.stats.total_served == 3
        mock_archive.archive_ticket.assert_awaited_once_with(
            mock_db, ticket, ExitReason.SERVED, now=now
        )
        mock_statistics.department_day_stats.assert_awaited_once_with(
            mock_db, "Admissions", "2026-03-04"
        )
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_finish_without_acceptance(
        self, mock_db, mock_repo, mock_archive, mock_statistics, make_ticket, make_archived, now
    ):
        """The whole stay counts as waiting."""
        ticket = make_ticket(created_minutes_ago=12.5)
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_archive.archive_ticket.return_value = make_archived(ticket, ExitReason.SERVED)

        result = await finish_ticket(mock_db, "AD1", now=now)

        assert result.completed_queue.waiting_time_minutes == "12.50"
        assert result.completed_queue.serving_time_minutes == "0.00"
        assert result.completed_queue.total_time_minutes == "12.50"
        assert result.next_queue is None

    @pytest.mark.asyncio
    async def test_archive_failure_rolls_back(
        self, mock_db, mock_repo, mock_archive, mock_statistics, make_ticket, now
    ):
        mock_repo.find_by_queue_number.return_value = [make_ticket()]
        mock_archive.archive_ticket.side_effect = SQLAlchemyError("disk full")

        with pytest.raises(QueuePersistenceError) as exc_info:
            await finish_ticket(mock_db, "AD1", now=now)

        assert exc_info.value.message == "Error finishing queue"
        mock_db.rollback.assert_awaited_once()
        mock_statistics.department_day_stats.assert_not_called()


class TestSkipAndReintegrate:
    """Tests for skip_ticket and reintegrate_ticket."""

    @pytest.mark.asyncio
    async def test_skip_pending_ticket(self, mock_db, mock_repo, make_ticket, now):
        ticket = make_ticket(queue_number="AD1")
        remaining = [make_ticket(queue_number="AD2"), make_ticket(queue_number="AD3")]
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_repo.list_pending.return_value = remaining

        result = await skip_ticket(mock_db, "AD1", skipped_by="desk-1", now=now)

        assert ticket.status == TicketStatus.SKIPPED
        assert ticket.is_skipped is True
        assert ticket.skipped_by == "desk-1"
        assert ticket.skipped_at == now
        assert result.message == "Queue AD1 skipped successfully"
        assert result.skipped_queue.status == TicketStatus.SKIPPED
        assert [item.queue_number for item in result.pending_queues] == ["AD2", "AD3"]
        mock_repo.list_pending.assert_awaited_once_with(mock_db, "Admissions")

    @pytest.mark.asyncio
    async def test_skip_accepted_ticket(self, mock_db, mock_repo, make_ticket, now):
        ticket = make_ticket(status=TicketStatus.ACCEPTED, serving_minutes_ago=3)
        mock_repo.find_by_queue_number.return_value = [ticket]

        await skip_ticket(mock_db, "AD1", skipped_by=None, now=now)

        assert ticket.status == TicketStatus.SKIPPED
        assert ticket.skipped_by == "admin"

    @pytest.mark.asyncio
    async def test_skip_twice_fails(self, mock_db, mock_repo, make_ticket, now):
        mock_repo.find_by_queue_number.return_value = [make_ticket(status=TicketStatus.SKIPPED)]

        with pytest.raises(InvalidTicketStateError) as exc_info:
            await skip_ticket(mock_db, "AD1", now=now)

        assert "Current status: skipped" in exc_info.value.message
        mock_repo.save_ticket.assert_not_called()

    @pytest.mark.asyncio
    async def test_reintegrate_skipped_ticket(self, mock_db, mock_repo, make_ticket, now):
        ticket = make_ticket(
            status=TicketStatus.SKIPPED, skipped_by="admin", skipped_at=now, created_minutes_ago=30
        )
        original_created_at = ticket.created_at
        mock_repo.find_by_queue_number.return_value = [ticket]

        result = await reintegrate_ticket(mock_db, "AD1")

        assert ticket.status == TicketStatus.PENDING
        assert ticket.is_skipped is False
        assert ticket.skipped_by is None
        # Original FIFO position is kept
        assert ticket.created_at == original_created_at
        assert result.message == "Queue AD1 reintegrated successfully"
        mock_repo.save_ticket.assert_awaited_once_with(mock_db, ticket)

    @pytest.mark.asyncio
    async def test_reintegrate_ticket_that_is_not_skipped(self, mock_db, mock_repo, make_ticket):
        ticket = make_ticket()
        mock_repo.find_by_queue_number.return_value = [ticket]

        result = await reintegrate_ticket(mock_db, "AD1")

        assert result.message == "Queue AD1 is not skipped"
        assert result.queue.status == TicketStatus.PENDING
        mock_repo.save_ticket.assert_not_called()


class TestTransferTicket:
    """Tests for transfer_ticket function."""

    @pytest.mark.asyncio
    async def test_transfer_archives_then_creates_in_target(
        self, mock_db, mock_repo, mock_archive, mock_numbering, make_ticket, make_archived, now
    ):
        ticket = make_ticket(
            queue_number="AD4", status=TicketStatus.ACCEPTED, serving_minutes_ago=5
        )
        guest_user_id = ticket.guest_user_id
        mock_repo.find_by_queue_number.return_value = [ticket]

        calls = []
        archived = make_archived(ticket, ExitReason.TRANSFERRED, transferred_to="Registrar")

        async def record_archive(*args, **kwargs):
            calls.append("archive")
            return archived

        async def record_number(*args, **kwargs):
            calls.append("number")
            return "RE9"

        mock_archive.archive_ticket.side_effect = record_archive
        mock_numbering.generate_queue_number.side_effect = record_number

        result = await transfer_ticket(
            mock_db,
            "AD4",
            target_department="Registrar",
            transferred_by="desk-3",
            transfer_reason="Needs transcript",
            now=now,
        )

        # The guest's old ticket leaves before the new one is numbered
        assert calls == ["archive", "number"]
        mock_archive.archive_ticket.assert_awaited_once_with(
            mock_db,
            ticket,
            ExitReason.TRANSFERRED,
            now=now,
            transferred_to="Registrar",
            transferred_by="desk-3",
            transfer_reason="Needs transcript",
        )
        mock_numbering.generate_queue_number.assert_awaited_once_with(
            mock_db, "Registrar", now=now
        )

        new_ticket = mock_repo.add_ticket.await_args.args[1]
        assert new_ticket.guest_user_id == guest_user_id
        assert new_ticket.department == "Registrar"
        assert new_ticket.status == TicketStatus.PENDING
        assert new_ticket.created_at == now
        assert new_ticket.transferred_from == "Admissions"
        assert new_ticket.previous_queue_number == "AD4"

        assert result.message == "Queue transferred from Admissions to Registrar"
        assert result.old_queue_number == "AD4"
        assert result.new_queue_number == "RE9"
        assert result.queue.queue_number == "RE9"
        assert result.timing_info.serving_time_minutes == "5.00"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [None, "", "  "])
    async def test_target_department_is_required(self, mock_db, mock_repo, target):
        with pytest.raises(QueueValidationError, match="Target department is required"):
            await transfer_ticket(mock_db, "AD1", target_department=target)

        mock_repo.find_by_queue_number.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_department_is_rejected(
        self, mock_db, mock_repo, mock_archive, mock_numbering, make_ticket
    ):
        mock_repo.find_by_queue_number.return_value = [make_ticket()]

        with pytest.raises(QueueValidationError, match="same department"):
            await transfer_ticket(mock_db, "AD1", target_department="Admissions")

        mock_archive.archive_ticket.assert_not_called()
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_numbering_failure_undoes_the_archive(
        self, mock_db, mock_repo, mock_archive, mock_numbering, make_ticket, make_archived, now
    ):
        ticket = make_ticket()
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_archive.archive_ticket.return_value = make_archived(ticket, ExitReason.TRANSFERRED)
        mock_numbering.generate_queue_number.side_effect = SQLAlchemyError("lock timeout")

        with pytest.raises(QueuePersistenceError):
            await transfer_ticket(mock_db, "AD1", target_department="Registrar", now=now)

        mock_repo.add_ticket.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()


    @pytest.mark.asyncio
    async def test_before_archive_runs_only_for_a_valid_transfer(
        self, mock_db, mock_repo, mock_archive, mock_numbering, make_ticket, make_archived, now
    ):
        ticket = make_ticket()
        check = AsyncMock()

        with pytest.raises(TicketNotFoundError):
            await transfer_ticket(
                mock_db, "AD1", target_department="Registrar", before_archive=check
            )
        mock_repo.find_by_queue_number.return_value = [ticket]
        with pytest.raises(QueueValidationError):
            await transfer_ticket(
                mock_db, "AD1", target_department="Admissions", before_archive=check
            )
        check.assert_not_called()

        mock_archive.archive_ticket.return_value = make_archived(ticket, ExitReason.TRANSFERRED)
        await transfer_ticket(
            mock_db, "AD1", target_department="Registrar", now=now, before_archive=check
        )
        check.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_before_archive_failure_aborts_the_transfer(
        self, mock_db, mock_repo, mock_archive, mock_numbering, make_ticket
    ):
        mock_repo.find_by_queue_number.return_value = [make_ticket()]
        check = AsyncMock(side_effect=RuntimeError("limit reached"))

        with pytest.raises(RuntimeError, match="limit reached"):
            await transfer_ticket(
                mock_db, "AD1", target_department="Registrar", before_archive=check
            )

        mock_archive.archive_ticket.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()


class TestRemoveTicket:
    @pytest.mark.asyncio
    async def test_remove_ticket(
        self, mock_db, mock_repo, mock_archive, make_ticket, make_archived, now
    ):
        ticket = make_ticket(queue_number="AD2")
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_repo.count_pending.return_value = 2
        mock_repo.get_next_pending.return_value = make_ticket(queue_number="AD3")
        mock_archive.archive_ticket.return_value = make_archived(
            ticket, ExitReason.REMOVED_BY_ADMIN, removed_by="desk-1", removal_reason="No show"
        )

        result = await remove_ticket(
            mock_db, "AD2", removed_by="desk-1", removal_reason="No show", now=now
        )

        mock_archive.archive_ticket.assert_awaited_once_with(
            mock_db,
            ticket,
            ExitReason.REMOVED_BY_ADMIN,
            now=now,
            removed_by="desk-1",
            removal_reason="No show",
        )
        assert result.message == "Queue AD2 removed successfully"
        assert result.removed_queue.removed_by == "desk-1"
        assert result.removed_queue.exit_reason == ExitReason.REMOVED_BY_ADMIN
        assert result.remaining_queue_count == 2
        assert result.next_queue.queue_number == "AD3"
        assert result.timing_info.total_time_minutes == "20.00"

    @pytest.mark.asyncio
    async def test_remove_defaults(
        self, mock_db, mock_repo, mock_archive, make_ticket, make_archived
    ):
        ticket = make_ticket()
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_archive.archive_ticket.return_value = make_archived(
            ticket, ExitReason.REMOVED_BY_ADMIN
        )

        await remove_ticket(mock_db, "AD1", removed_by=None, removal_reason=None)

        kwargs = mock_archive.archive_ticket.await_args.kwargs
        assert kwargs["removed_by"] == "admin"
        assert kwargs["removal_reason"] == "Administrative action"

    @pytest.mark.asyncio
    async def test_before_archive_runs_after_lookup(
        self, mock_db, mock_repo, mock_archive, make_ticket, make_archived
    ):
        check = AsyncMock()

        with pytest.raises(TicketNotFoundError):
            await remove_ticket(mock_db, "AD9", before_archive=check)
        check.assert_not_called()

        ticket = make_ticket()
        mock_repo.find_by_queue_number.return_value = [ticket]
        mock_archive.archive_ticket.return_value = make_archived(
            ticket, ExitReason.REMOVED_BY_ADMIN
        )
        await remove_ticket(mock_db, "AD1", before_archive=check)

        check.assert_awaited_once_with()


class TestGuestExits:
    @pytest.mark.asyncio
    async def test_leave_queue(
        self, mock_db, mock_repo, mock_archive, make_ticket, make_archived, now
    ):
        ticket = make_ticket()
        mock_repo.find_by_queue_number.return_value = [ticket]
        archived = make_archived(ticket, ExitReason.USER_LEFT)
        mock_archive.archive_ticket.return_value = archived

        result = await leave_queue(mock_db, "AD1", now=now)

        assert result is archived
        mock_archive.archive_ticket.assert_awaited_once_with(
            mock_db, ticket, ExitReason.USER_LEFT, now=now
        )
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_manual_archive_needs_an_identifier(self, mock_db, mock_repo):
        with pytest.raises(QueueValidationError):
            await archive_ticket_manually(mock_db)

    @pytest.mark.asyncio
    async def test_manual_archive_by_guest(
        self, mock_db, mock_repo, mock_archive, make_ticket, make_archived
    ):
        ticket = make_ticket()
        mock_repo.get_by_guest_user.return_value = ticket
        mock_archive.archive_ticket.return_value = make_archived(ticket, ExitReason.OTHER)

        await archive_ticket_manually(
            mock_db, guest_user_id=ticket.guest_user_id, exit_reason=ExitReason.OTHER
        )

        mock_repo.get_by_guest_user.assert_awaited_once_with(
            mock_db, ticket.guest_user_id, for_update=True
        )
        assert mock_archive.archive_ticket.await_args.args[2] == ExitReason.OTHER

    @pytest.mark.asyncio
    async def test_manual_archive_unknown_guest(self, mock_db, mock_repo, mock_archive):
        with pytest.raises(TicketNotFoundError):
            await archive_ticket_manually(mock_db, guest_user_id=uuid4())

        mock_archive.archive_ticket.assert_not_called()


class TestReads:
    @pytest.mark.asyncio
    async def test_status_of_active_ticket(self, mock_db, mock_repo, make_ticket):
        mock_repo.find_by_queue_number.return_value = [make_ticket(status=TicketStatus.ACCEPTED)]

        assert await get_ticket_status(mock_db, "AD1") == TicketStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_status_of_unknown_ticket_reads_pending(self, mock_db, mock_repo):
        assert await get_ticket_status(mock_db, "AD42") == TicketStatus.PENDING

    @pytest.mark.asyncio
    async def test_currently_serving_idle_counter(self, mock_db, mock_repo):
        result = await get_currently_serving(mock_db, "Admissions")

        assert result.queue_number is None
        assert result.serving_start_time is None

    @pytest.mark.asyncio
    async def test_currently_serving(self, mock_db, mock_repo, make_ticket):
        ticket = make_ticket(status=TicketStatus.ACCEPTED, serving_minutes_ago=1)
        mock_repo.get_currently_serving.return_value = ticket

        result = await get_currently_serving(mock_db, "Admissions")

        assert result.id == ticket.id
        assert result.queue_number == "AD1"
        assert result.serving_start_time == ticket.serving_start_time

    @pytest.mark.asyncio
    async def test_current_queue_number_is_numeric_max(self, mock_db, mock_repo):
        mock_repo.list_pending_queue_numbers.return_value = ["AD9", "AD10", "AD2"]

        assert await get_current_queue_number(mock_db, "Admissions") == 10

    @pytest.mark.asyncio
    async def test_current_queue_number_of_empty_queue(self, mock_db, mock_repo):
        assert await get_current_queue_number(mock_db, "Registrar") == 0

    @pytest.mark.asyncio
    async def test_reads_require_department(self, mock_db, mock_repo):
        with pytest.raises(QueueValidationError, match="Department is required"):
            await get_current_queue_number(mock_db, None)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("viewer", ["IT", "Administration", None, "  "])
    async def test_archive_export_for_all_departments(self, mock_db, mock_repo, viewer):
        await list_archived(mock_db, department=viewer)

        mock_repo.list_archived.assert_awaited_once_with(
            mock_db, department=None, archive_date=None, skip=0, limit=None
        )

    @pytest.mark.asyncio
    async def test_archive_export_for_one_department_and_day(self, mock_db, mock_repo):
        await list_archived(mock_db, department="Registrar", date="2026-03-04", skip=5, limit=10)

        mock_repo.list_archived.assert_awaited_once_with(
            mock_db, department="Registrar", archive_date="2026-03-04", skip=5, limit=10
        )

    @pytest.mark.asyncio
    async def test_archive_export_rejects_bad_date(self, mock_db, mock_repo):
        with pytest.raises(QueueValidationError, match="YYYY-MM-DD"):
            await list_archived(mock_db, department="Registrar", date="04/03/2026")
