"""
Guest Queue Schemas

Pydantic schemas for request validation and response serialization.
The kiosk and counter panel speak camelCase JSON; Python code uses the
snake_case field names (``populate_by_name``).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Re-use enums from models
from app.modules.guest_queue.helpers import format_minutes
from app.modules.guest_queue.models import ArchiveStatus, ExitReason, TicketStatus


class QueueSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MinutesMixin(QueueSchema):
    """Durations are emitted as 2-decimal strings ("12.50"), null when unknown."""

    @field_validator(
        "waiting_time_minutes",
        "serving_time_minutes",
        "total_time_minutes",
        mode="before",
        check_fields=False,
    )
    @classmethod
    def format_duration(cls, value: Decimal | float | str | None) -> str | None:
        return format_minutes(value)


def _strip_required(value: str | None, field: str) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError(f"{field} must not be blank")
    return value


# ============================================
# Requests
# ============================================


class CreateTicketRequest(QueueSchema):
    """Request body for POST /guest-queue/create."""

    guest_user_id: UUID
    department: str = Field(..., max_length=100)

    @field_validator("department")
    @classmethod
    def department_not_blank(cls, value: str) -> str:
        return _strip_required(value, "department")


class ArchiveTicketRequest(QueueSchema):
    """Request body for POST /guest-queue/archive. One identifier is required."""

    queue_number: str | None = None
    guest_user_id: UUID | None = None
    department: str | None = None
    exit_reason: ExitReason = ExitReason.USER_LEFT


class SkipQueueRequest(QueueSchema):
    skipped_by: str = Field(default="admin", max_length=200)


class TransferQueueRequest(QueueSchema):
    target_department: str | None = Field(default=None, max_length=100)
    transferred_by: str = Field(default="admin", max_length=200)
    transfer_reason: str = Field(default="Administrative transfer", max_length=1000)


class RemoveQueueRequest(QueueSchema):
    removed_by: str = Field(default="admin", max_length=200)
    removal_reason: str = Field(default="Administrative action", max_length=1000)


# ============================================
# Ticket representations
# ============================================


class TicketResponse(QueueSchema):
    """An active ticket."""

    id: UUID
    guest_user_id: UUID
    department: str
    queue_number: str
    status: TicketStatus
    created_at: datetime
    serving_start_time: datetime | None = None
    is_skipped: bool = False
    skipped_by: str | None = None
    skipped_at: datetime | None = None
    transferred_from: str | None = None
    previous_queue_number: str | None = None


class ArchivedTicketResponse(MinutesMixin):
    """A ticket in the archive."""

    id: UUID
    original_queue_id: UUID
    original_queue_number: str
    guest_user_id: UUID
    department: str
    ticket_status: TicketStatus
    status: ArchiveStatus
    exit_reason: ExitReason
    created_at: datetime | None = None
    serving_start_time: datetime | None = None
    serving_end_time: datetime | None = None
    archived_at: datetime
    archive_date: str
    unique_archive_id: str
    waiting_time_minutes: str | None = None
    serving_time_minutes: str | None = None
    total_time_minutes: str | None = None
    is_skipped: bool = False
    skipped_by: str | None = None
    skipped_at: datetime | None = None
    transferred_from: str | None = None
    previous_queue_number: str | None = None
    transferred_to: str | None = None
    transferred_by: str | None = None
    transfer_reason: str | None = None
    removed_by: str | None = None
    removal_reason: str | None = None


class TimingInfo(MinutesMixin):
    waiting_time_minutes: str | None = None
    serving_time_minutes: str | None = None
    total_time_minutes: str | None = None


class CompletedQueue(TimingInfo):
    queue_number: str


class NextQueue(QueueSchema):
    """Head of the pending queue. A hint for the counter, not an acceptance."""

    queue_number: str
    created_at: datetime


# ============================================
# Lifecycle responses
# ============================================


class AcceptQueueResponse(QueueSchema):
    message: str
    next_queue_number: str | None = None
    serving_start_time: datetime


class DepartmentDayStats(QueueSchema):
    date: str
    total_served: int
    avg_serving_time: str
    avg_waiting_time: str
    avg_total_time: str


class FinishQueueResponse(QueueSchema):
    success: bool = True
    message: str
    completed_queue: CompletedQueue
    next_queue: NextQueue | None = None
    stats: DepartmentDayStats


class SkipQueueResponse(QueueSchema):
    message: str
    skipped_queue: TicketResponse
    pending_queues: list[TicketResponse]


class ReintegrateQueueResponse(QueueSchema):
    message: str
    queue: TicketResponse


class TransferQueueResponse(QueueSchema):
    success: bool = True
    message: str
    old_queue_number: str
    new_queue_number: str
    timing_info: TimingInfo
    queue: TicketResponse


class RemoveQueueResponse(QueueSchema):
    message: str
    removed_queue: ArchivedTicketResponse
    remaining_queue_count: int
    next_queue: NextQueue | None = None
    timing_info: TimingInfo


# ============================================
# Read responses
# ============================================


class TicketStatusResponse(QueueSchema):
    status: TicketStatus


class CurrentlyServingResponse(QueueSchema):
    """The accepted ticket of a department; all fields null when the counter is idle."""

    id: UUID | None = None
    guest_user_id: UUID | None = None
    queue_number: str | None = None
    serving_start_time: datetime | None = None


class CurrentQueueNumberResponse(QueueSchema):
    current_queue_number: int


class ServingNow(QueueSchema):
    queue_number: str
    serving_start_time: datetime | None = None
    estimated_remaining_minutes: int


class WeeklyStats(QueueSchema):
    start_date: str
    end_date: str
    total_served: int
    avg_serving_time: str
    avg_waiting_time: str
    avg_total_time: str


class StatisticsResponse(QueueSchema):
    department: str
    date: str
    total_served: int
    avg_serving_time: str
    avg_waiting_time: str
    avg_total_time: str
    pending_count: int
    currently_serving: ServingNow | None = None
    weekly: WeeklyStats


class ArchivedListResponse(QueueSchema):
    success: bool = True
    data: list[ArchivedTicketResponse]
    count: int
