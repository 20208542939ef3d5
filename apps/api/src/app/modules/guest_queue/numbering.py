"""
Queue Number Generator

Issues ``<prefix><n>`` numbers per department per local day. The next value is
the larger of the stored counter and the highest number already visible in
the active queue or in today's archive, plus one, so numbers are never reused
within a day even if the counter row is missing or behind.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.guest_queue import repository
from app.modules.guest_queue.helpers import (
    format_queue_number,
    get_department_prefix,
    local_today,
    max_queue_suffix,
    require_department,
)

logger = logging.getLogger(__name__)


async def generate_queue_number(
    db: AsyncSession,
    department: str,
    now: datetime | None = None,
) -> str:
    """
    Reserve the next queue number for ``department``.

    Must run inside the caller's transaction: the counter row stays locked
    until commit, which serializes concurrent creates and transfers.

    Raises:
        QueueValidationError: If department is empty
    """
    department = require_department(department)
    prefix = get_department_prefix(department)
    today = local_today(now)

    active_numbers = await repository.list_active_queue_numbers(db, department)
    archived_numbers = await repository.list_archived_queue_numbers_for_day(db, department, today)

    floor = max(
        max_queue_suffix(active_numbers, prefix),
        max_queue_suffix(archived_numbers, prefix),
    )
    next_number = await repository.next_counter_value(db, department, today, floor)

    queue_number = format_queue_number(prefix, next_number)
    logger.debug(f"Issued queue number {queue_number} for {department} on {today}")
    return queue_number
