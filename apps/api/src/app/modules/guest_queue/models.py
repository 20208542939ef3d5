"""
Guest Queue Models

Three tables back the walk-in queue:
- guest_queue_tickets: tickets currently waiting or being served (active store)
- archived_guest_tickets: append-only history of every ticket that left the queue
- queue_counters: last issued number per department per local day
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Department(str, enum.Enum):
    """Departments with a fixed queue prefix. Other departments are free text."""

    ADMISSIONS = "Admissions"
    REGISTRAR = "Registrar"
    ACCOUNTING = "Accounting"


class TicketStatus(str, enum.Enum):
    """Status of an active ticket."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    SKIPPED = "skipped"
    SERVED = "served"
    LEFT = "left"


class ExitReason(str, enum.Enum):
    """Why a ticket left the active queue."""

    SERVED = "served"
    USER_LEFT = "user_left"
    REJOINED = "rejoined"
    TRANSFERRED = "transferred"
    REMOVED_BY_ADMIN = "removed_by_admin"
    OTHER = "other"


class ArchiveStatus(str, enum.Enum):
    """Outcome recorded on an archived ticket."""

    COMPLETED = "completed"
    LEFT = "left"
    TRANSFERRED = "transferred"
    REMOVED_BY_ADMIN = "removed_by_admin"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class GuestQueueTicket(Base):
    """
    A ticket in the active queue.

    At most one active ticket per guest (unique guest_user_id) and queue
    numbers are unique within a department. ``created_at`` is the FIFO key
    and is never modified after insert.
    """

    __tablename__ = "guest_queue_tickets"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Weak reference to guest_users.id (no FK)
    guest_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    department: Mapped[str] = mapped_column(String(100), nullable=False)
    queue_number: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, name="guest_ticket_status", values_callable=_enum_values),
        default=TicketStatus.PENDING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    serving_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Skip sub-state
    is_skipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    skipped_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    skipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Provenance of transferred tickets
    transferred_from: Mapped[str | None] = mapped_column(String(100), nullable=True)
    previous_queue_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("department", "queue_number", name="uq_guest_queue_department_number"),
        UniqueConstraint("guest_user_id", name="uq_guest_queue_guest_user"),
        Index("ix_guest_queue_department_status_created", "department", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<GuestQueueTicket {self.department}/{self.queue_number} ({self.status.value})>"


class ArchivedGuestTicket(Base):
    """
    Immutable record of a ticket that left the active queue.

    Durations are computed once at archival and stored as fixed-point minutes.
    ``archive_date`` is the local office date (YYYY-MM-DD) used by numbering
    and statistics.
    """

    __tablename__ = "archived_guest_tickets"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Copied from the active ticket
    original_queue_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    original_queue_number: Mapped[str] = mapped_column(String(32), nullable=False)
    guest_user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    ticket_status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, name="guest_ticket_status", values_callable=_enum_values),
        nullable=False,
    )
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    serving_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_skipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    skipped_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    skipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transferred_from: Mapped[str | None] = mapped_column(String(100), nullable=True)
    previous_queue_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Archival
    archived_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    archive_date: Mapped[str] = mapped_column(String(10), nullable=False)
    exit_reason: Mapped[ExitReason] = mapped_column(
        Enum(ExitReason, name="guest_exit_reason", values_callable=_enum_values),
        nullable=False,
    )
    status: Mapped[ArchiveStatus] = mapped_column(
        Enum(ArchiveStatus, name="guest_archive_status", values_callable=_enum_values),
        nullable=False,
    )
    serving_end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    unique_archive_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # Metrics (minutes, 2 decimals)
    waiting_time_minutes: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    serving_time_minutes: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    total_time_minutes: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Transfer metadata
    transferred_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transferred_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    transfer_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Removal metadata
    removed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    removal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_archived_guest_department_date", "department", "archive_date"),
        Index("ix_archived_guest_original_queue_id", "original_queue_id"),
        Index("ix_archived_guest_archived_at", "archived_at"),
    )

    def __repr__(self) -> str:
        return f"<ArchivedGuestTicket {self.unique_archive_id} ({self.status.value})>"


class QueueCounter(Base):
    """Last queue number issued for a department on a local date."""

    __tablename__ = "queue_counters"

    department: Mapped[str] = mapped_column(String(100), primary_key=True)
    counter_date: Mapped[str] = mapped_column(String(10), primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
