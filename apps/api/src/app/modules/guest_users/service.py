"""
Guest User Service
"""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.guest_queue.errors import GuestUserNotFoundError, QueuePersistenceError
from app.modules.guest_users.models import GuestUser
from app.modules.guest_users.repository import GuestUserRepository
from app.modules.guest_users.schemas import GuestUserCreate

logger = logging.getLogger(__name__)


async def register_guest(db: AsyncSession, data: GuestUserCreate) -> tuple[GuestUser, bool]:
    """
    Return the guest registered under ``data.mobile_number``, creating it if needed.

    Returns:
        (guest, created) where ``created`` is False when the number was already known.
        An existing guest keeps its original name.
    """
    existing = await GuestUserRepository.get_by_mobile_number(db, data.mobile_number)
    if existing:
        return existing, False

    try:
        guest = await GuestUserRepository.create(
            db, name=data.name, mobile_number=data.mobile_number
        )
        await db.commit()
        return guest, True
    except IntegrityError as e:
        # Another kiosk registered the same number first
        await db.rollback()
        existing = await GuestUserRepository.get_by_mobile_number(db, data.mobile_number)
        if existing is None:
            logger.error(f"Guest user insert conflicted but no row was found: {e}")
            raise QueuePersistenceError(
                "Failed to register guest user", detail=str(e.orig)
            ) from e
        return existing, False
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to register guest user: {e}", exc_info=True)
        raise QueuePersistenceError("Failed to register guest user", detail=str(e)) from e


async def get_guest(db: AsyncSession, guest_user_id: UUID) -> GuestUser:
    guest = await GuestUserRepository.get_by_id(db, guest_user_id)
    if guest is None:
        raise GuestUserNotFoundError(guest_user_id)
    return guest
