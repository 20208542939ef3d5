"""
Guest Queue Shared Helpers

Pure functions shared by the service, numbering, archive, statistics and job
modules. All local-date derivation goes through ``to_local_date`` so archive
dates, numbering days and statistics days always agree.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.modules.guest_queue.errors import QueueValidationError
from app.modules.guest_queue.models import ArchiveStatus, Department, ExitReason

DATE_FORMAT = "%Y-%m-%d"
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TWO_PLACES = Decimal("0.01")
ONE_PLACE = Decimal("0.1")

DEPARTMENT_PREFIXES: dict[str, str] = {
    Department.ADMISSIONS.value: "AD",
    Department.REGISTRAR.value: "RE",
    Department.ACCOUNTING.value: "AC",
}

EXIT_REASON_TO_ARCHIVE_STATUS: dict[ExitReason, ArchiveStatus] = {
    ExitReason.SERVED: ArchiveStatus.COMPLETED,
    ExitReason.USER_LEFT: ArchiveStatus.LEFT,
    ExitReason.REJOINED: ArchiveStatus.LEFT,
    ExitReason.TRANSFERRED: ArchiveStatus.TRANSFERRED,
    ExitReason.REMOVED_BY_ADMIN: ArchiveStatus.REMOVED_BY_ADMIN,
    ExitReason.OTHER: ArchiveStatus.LEFT,
}

# Exits where a counter was working the ticket up to this moment
EXITS_ENDING_SERVICE = frozenset(
    {ExitReason.SERVED, ExitReason.TRANSFERRED, ExitReason.REMOVED_BY_ADMIN}
)

# Viewers that see every department's archive
ALL_DEPARTMENT_VIEWERS = frozenset({"IT", "Administration"})


# ============================================
# Time
# ============================================


def utc_now() -> datetime:
    return datetime.now(UTC)


def office_timezone() -> ZoneInfo:
    return ZoneInfo(settings.queue_timezone)


def to_local_date(moment: datetime) -> str:
    """Local office date of ``moment`` as YYYY-MM-DD. Naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(office_timezone()).strftime(DATE_FORMAT)


def local_today(now: datetime | None = None) -> str:
    return to_local_date(now or utc_now())


def local_day_start(day: str) -> datetime:
    """UTC instant at which the local date ``day`` begins."""
    local_midnight = datetime.strptime(day, DATE_FORMAT).replace(tzinfo=office_timezone())
    return local_midnight.astimezone(UTC)


def parse_date_param(value: str | None, now: datetime | None = None) -> str:
    """
    Validate a YYYY-MM-DD query value, defaulting to local today.

    Raises:
        QueueValidationError: If the value is not a real calendar date in that format
    """
    if value is None or value == "":
        return local_today(now)

    if not _DATE_PATTERN.match(value):
        raise QueueValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError as e:
        raise QueueValidationError("Invalid date format. Use YYYY-MM-DD") from e
    return value


def week_start(day: str) -> str:
    """Sunday that starts the week containing ``day``."""
    current = datetime.strptime(day, DATE_FORMAT).date()
    # weekday(): Monday=0 ... Sunday=6
    sunday = current - timedelta(days=(current.weekday() + 1) % 7)
    return sunday.strftime(DATE_FORMAT)


# ============================================
# Departments and queue numbers
# ============================================


def require_department(department: str | None) -> str:
    """Strip and validate a department value."""
    if department is None or not department.strip():
        raise QueueValidationError("Department is required")
    return department.strip()


def get_department_prefix(department: str) -> str:
    """
    Queue number prefix for a department.

    Known departments use a fixed table, anything else the first two
    characters upper-cased.
    """
    department = require_department(department)
    if department in DEPARTMENT_PREFIXES:
        return DEPARTMENT_PREFIXES[department]
    return department[:2].upper()


def parse_queue_suffix(queue_number: str | None, prefix: str) -> int | None:
    """
    Numeric suffix of ``queue_number`` when it carries ``prefix``.

    Returns None for numbers from another prefix or with a non-numeric tail.
    """
    if not queue_number or not queue_number.startswith(prefix):
        return None
    tail = queue_number[len(prefix) :]
    if not tail.isdigit():
        return None
    return int(tail)


def max_queue_suffix(queue_numbers: list[str], prefix: str) -> int:
    """Highest numeric suffix among ``queue_numbers``, 0 if none parse."""
    suffixes = [parse_queue_suffix(number, prefix) for number in queue_numbers]
    return max((suffix for suffix in suffixes if suffix is not None), default=0)


def format_queue_number(prefix: str, number: int) -> str:
    return f"{prefix}{number}"


# ============================================
# Archive metrics
# ============================================


@dataclass(frozen=True)
class ExitMetrics:
    """Durations in minutes, rounded half-up to 2 decimals."""

    waiting_time_minutes: Decimal | None
    serving_time_minutes: Decimal | None
    total_time_minutes: Decimal | None


def _minutes(delta: timedelta) -> Decimal:
    seconds = Decimal(str(delta.total_seconds()))
    return (seconds / Decimal(60)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_exit_metrics(
    created_at: datetime | None,
    serving_start_time: datetime | None,
    now: datetime,
) -> ExitMetrics:
    """
    Waiting, serving and total minutes for a ticket leaving the queue at ``now``.

    A ticket that was never accepted waited the whole time: waiting equals
    total and serving is zero.
    """
    if created_at is None:
        return ExitMetrics(None, None, None)

    total = _minutes(now - created_at)

    if serving_start_time is None:
        return ExitMetrics(
            waiting_time_minutes=total,
            serving_time_minutes=Decimal("0.00"),
            total_time_minutes=total,
        )

    return ExitMetrics(
        waiting_time_minutes=_minutes(serving_start_time - created_at),
        serving_time_minutes=_minutes(now - serving_start_time),
        total_time_minutes=total,
    )


def format_minutes(value: Decimal | float | int | str | None) -> str | None:
    """Wire format for stored durations: 2-decimal string, None stays None."""
    if value is None:
        return None
    return str(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def format_average(value: Decimal | float | int | None) -> str:
    """Statistics averages: 1-decimal string, "0.0" when there is no data."""
    if value is None:
        return "0.0"
    return str(Decimal(str(value)).quantize(ONE_PLACE, rounding=ROUND_HALF_UP))


def build_unique_archive_id(queue_number: str, archived_at: datetime) -> str:
    """``<queueNumber>-<epoch milliseconds>``."""
    return f"{queue_number}-{int(archived_at.timestamp() * 1000)}"


def archive_status_for(exit_reason: ExitReason) -> ArchiveStatus:
    return EXIT_REASON_TO_ARCHIVE_STATUS[exit_reason]


def estimate_remaining_minutes(
    avg_serving_minutes: Decimal | float | None,
    serving_start_time: datetime | None,
    now: datetime,
) -> int:
    """max(0, round(average serving time - minutes already spent at the counter))."""
    if avg_serving_minutes is None or serving_start_time is None:
        return 0
    elapsed = (now - serving_start_time).total_seconds() / 60
    return max(0, round(float(avg_serving_minutes) - elapsed))
