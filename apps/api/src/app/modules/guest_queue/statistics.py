"""
Guest Queue Statistics

Read-only aggregates over the archive and the active queue for the counter
dashboard: today's completed tickets, the week so far, the pending count and
an estimate for the ticket currently at the counter.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.guest_queue import repository
from app.modules.guest_queue.helpers import (
    estimate_remaining_minutes,
    format_average,
    parse_date_param,
    require_department,
    utc_now,
    week_start,
)
from app.modules.guest_queue.repository import ServedAggregate
from app.modules.guest_queue.schemas import (
    DepartmentDayStats,
    ServingNow,
    StatisticsResponse,
    WeeklyStats,
)

logger = logging.getLogger(__name__)


def _day_stats(day: str, aggregate: ServedAggregate) -> DepartmentDayStats:
    return DepartmentDayStats(
        date=day,
        total_served=aggregate.total_served,
        avg_serving_time=format_average(aggregate.avg_serving_time),
        avg_waiting_time=format_average(aggregate.avg_waiting_time),
        avg_total_time=format_average(aggregate.avg_total_time),
    )


async def department_day_stats(db: AsyncSession, department: str, day: str) -> DepartmentDayStats:
    """Completed-ticket count and average durations for one department and local day."""
    aggregate = await repository.aggregate_served(db, department, day, day)
    return _day_stats(day, aggregate)


async def get_statistics(
    db: AsyncSession,
    department: str | None,
    date: str | None = None,
    now: datetime | None = None,
) -> StatisticsResponse:
    """
    Dashboard statistics for ``department`` on ``date`` (default: local today).

    Raises:
        QueueValidationError: If department is missing or date is not YYYY-MM-DD
    """
    department = require_department(department)
    now = now or utc_now()
    day = parse_date_param(date, now)

    daily_aggregate = await repository.aggregate_served(db, department, day, day)
    daily = _day_stats(day, daily_aggregate)

    first_day = week_start(day)
    weekly = await repository.aggregate_served(db, department, first_day, day)

    pending_count = await repository.count_pending(db, department)

    currently_serving = None
    serving = await repository.get_currently_serving(db, department)
    if serving is not None:
        currently_serving = ServingNow(
            queue_number=serving.queue_number,
            serving_start_time=serving.serving_start_time,
            estimated_remaining_minutes=estimate_remaining_minutes(
                daily_aggregate.avg_serving_time,
                serving.serving_start_time,
                now,
            ),
        )

    logger.debug(
        f"Statistics for {department} on {day}: served={daily.total_served}, "
        f"pending={pending_count}"
    )

    return StatisticsResponse(
        department=department,
        date=day,
        total_served=daily.total_served,
        avg_serving_time=daily.avg_serving_time,
        avg_waiting_time=daily.avg_waiting_time,
        avg_total_time=daily.avg_total_time,
        pending_count=pending_count,
        currently_serving=currently_serving,
        weekly=WeeklyStats(
            start_date=first_day,
            end_date=day,
            total_served=weekly.total_served,
            avg_serving_time=format_average(weekly.avg_serving_time),
            avg_waiting_time=format_average(weekly.avg_waiting_time),
            avg_total_time=format_average(weekly.avg_total_time),
        ),
    )
