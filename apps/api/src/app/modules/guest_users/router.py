"""
Guest Users Router

Kiosk registration of walk-in guests.

Endpoints:
- POST /guest-users - Find or create a guest by mobile number
- GET /guest-users/{id} - Get a guest
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.guest_queue.errors import QueueServiceError, to_http_exception
from app.modules.guest_users import service
from app.modules.guest_users.schemas import (
    GuestUserCreate,
    GuestUserEnvelope,
    GuestUserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=GuestUserEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Register Guest",
    description="""
Register a walk-in guest. The mobile number identifies the guest: posting a
number that is already registered returns the existing guest (200) instead
of creating a duplicate.
""",
    responses={
        200: {"description": "Guest already registered", "model": GuestUserEnvelope},
        201: {"description": "Guest created", "model": GuestUserEnvelope},
    },
)
async def register_guest(
    data: GuestUserCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> GuestUserEnvelope:
    try:
        guest, created = await service.register_guest(db, data)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    if not created:
        response.status_code = status.HTTP_200_OK
        message = "Guest user already registered"
    else:
        message = "Guest user created successfully"

    return GuestUserEnvelope(message=message, data=GuestUserResponse.model_validate(guest))


@router.get(
    "/{guest_user_id}",
    response_model=GuestUserResponse,
    summary="Get Guest",
    responses={404: {"description": "Guest user not found"}},
)
async def get_guest(
    guest_user_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> GuestUserResponse:
    try:
        guest = await service.get_guest(db, guest_user_id)
    except QueueServiceError as e:
        raise to_http_exception(e) from e

    return GuestUserResponse.model_validate(guest)
