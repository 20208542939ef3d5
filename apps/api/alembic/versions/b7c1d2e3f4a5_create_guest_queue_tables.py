"""create guest queue tables

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration:
1. Creates guest_users (walk-in guests, unique mobile number)
2. Creates guest_queue_tickets (active queue)
3. Creates archived_guest_tickets (append-only history with durations)
4. Creates queue_counters (last number per department per local day)

Tickets reference guests without a foreign key.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "b7c1d2e3f4a5"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ticket_status_enum = postgresql.ENUM(
    "pending",
    "accepted",
    "skipped",
    "served",
    "left",
    name="guest_ticket_status",
    create_type=False,
)
exit_reason_enum = postgresql.ENUM(
    "served",
    "user_left",
    "rejoined",
    "transferred",
    "removed_by_admin",
    "other",
    name="guest_exit_reason",
    create_type=False,
)
archive_status_enum = postgresql.ENUM(
    "completed",
    "left",
    "transferred",
    "removed_by_admin",
    name="guest_archive_status",
    create_type=False,
)


def upgrade() -> None:
    """Create guest queue tables."""
    bind = op.get_bind()
    ticket_status_enum.create(bind, checkfirst=True)
    exit_reason_enum.create(bind, checkfirst=True)
    archive_status_enum.create(bind, checkfirst=True)

    op.create_table(
        "guest_users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("mobile_number", sa.String(length=32), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_guest_users_mobile_number"), "guest_users", ["mobile_number"], unique=True
    )

    op.create_table(
        "guest_queue_tickets",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("guest_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("department", sa.String(length=100), nullable=False),
        sa.Column("queue_number", sa.String(length=32), nullable=False),
        sa.Column("status", ticket_status_enum, nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("serving_start_time", sa.DateTime(timezone=True), nullable=True),
        # Skip sub-state
        sa.Column("is_skipped", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("skipped_by", sa.String(length=200), nullable=True),
        sa.Column("skipped_at", sa.DateTime(timezone=True), nullable=True),
        # Transfer provenance
        sa.Column("transferred_from", sa.String(length=100), nullable=True),
        sa.Column("previous_queue_number", sa.String(length=32), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "department", "queue_number", name="uq_guest_queue_department_number"
        ),
        sa.UniqueConstraint("guest_user_id", name="uq_guest_queue_guest_user"),
    )
    op.create_index(
        "ix_guest_queue_department_status_created",
        "guest_queue_tickets",
        ["department", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "archived_guest_tickets",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("original_queue_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("original_queue_number", sa.String(length=32), nullable=False),
        sa.Column("guest_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("department", sa.String(length=100), nullable=False),
        sa.Column("ticket_status", ticket_status_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("serving_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_skipped", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("skipped_by", sa.String(length=200), nullable=True),
        sa.Column("skipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transferred_from", sa.String(length=100), nullable=True),
        sa.Column("previous_queue_number", sa.String(length=32), nullable=True),
        # Archival
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("archive_date", sa.String(length=10), nullable=False),
        sa.Column("exit_reason", exit_reason_enum, nullable=False),
        sa.Column("status", archive_status_enum, nullable=False),
        sa.Column("serving_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unique_archive_id", sa.String(length=64), nullable=False),
        # Durations in minutes
        sa.Column("waiting_time_minutes", sa.Numeric(10, 2), nullable=True),
        sa.Column("serving_time_minutes", sa.Numeric(10, 2), nullable=True),
        sa.Column("total_time_minutes", sa.Numeric(10, 2), nullable=True),
        # Transfer / removal metadata
        sa.Column("transferred_to", sa.String(length=100), nullable=True),
        sa.Column("transferred_by", sa.String(length=200), nullable=True),
        sa.Column("transfer_reason", sa.Text(), nullable=True),
        sa.Column("removed_by", sa.String(length=200), nullable=True),
        sa.Column("removal_reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("unique_archive_id", name="uq_archived_guest_unique_archive_id"),
    )
    op.create_index(
        "ix_archived_guest_department_date",
        "archived_guest_tickets",
        ["department", "archive_date"],
        unique=False,
    )
    op.create_index(
        "ix_archived_guest_original_queue_id",
        "archived_guest_tickets",
        ["original_queue_id"],
        unique=False,
    )
    op.create_index(
        "ix_archived_guest_archived_at",
        "archived_guest_tickets",
        ["archived_at"],
        unique=False,
    )

    op.create_table(
        "queue_counters",
        sa.Column("department", sa.String(length=100), nullable=False),
        sa.Column("counter_date", sa.String(length=10), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("department", "counter_date"),
    )


def downgrade() -> None:
    """Drop guest queue tables."""
    op.drop_table("queue_counters")

    op.drop_index("ix_archived_guest_archived_at", table_name="archived_guest_tickets")
    op.drop_index("ix_archived_guest_original_queue_id", table_name="archived_guest_tickets")
    op.drop_index("ix_archived_guest_department_date", table_name="archived_guest_tickets")
    op.drop_table("archived_guest_tickets")

    op.drop_index("ix_guest_queue_department_status_created", table_name="guest_queue_tickets")
    op.drop_table("guest_queue_tickets")

    op.drop_index(op.f("ix_guest_users_mobile_number"), table_name="guest_users")
    op.drop_table("guest_users")

    bind = op.get_bind()
    archive_status_enum.drop(bind, checkfirst=True)
    exit_reason_enum.drop(bind, checkfirst=True)
    ticket_status_enum.drop(bind, checkfirst=True)
