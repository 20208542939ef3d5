"""
Guest User Repository

Database operations for walk-in guests. Methods flush but never commit;
the caller owns the transaction.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.guest_users.models import GuestUser

logger = logging.getLogger(__name__)


class GuestUserRepository:
    """Repository for guest user database operations."""

    @staticmethod
    async def create(db: AsyncSession, *, name: str, mobile_number: str) -> GuestUser:
        guest = GuestUser(name=name, mobile_number=mobile_number)

        db.add(guest)
        await db.flush()
        await db.refresh(guest)

        logger.info(f"Created guest user: {guest.id}")
        return guest

    @staticmethod
    async def get_by_id(db: AsyncSession, guest_user_id: UUID) -> GuestUser | None:
        return await db.get(GuestUser, guest_user_id)

    @staticmethod
    async def get_by_mobile_number(db: AsyncSession, mobile_number: str) -> GuestUser | None:
        result = await db.execute(select(GuestUser).where(GuestUser.mobile_number == mobile_number))
        return result.scalar_one_or_none()
