from fastapi import APIRouter

from app.modules.guest_queue import admin_router as guest_queue_admin_router
from app.modules.guest_queue import router as guest_queue_router
from app.modules.guest_users import router as guest_users_router

api_router = APIRouter()

api_router.include_router(guest_users_router, prefix="/guest-users", tags=["Guest Users"])

api_router.include_router(guest_queue_router, prefix="/guest-queue", tags=["Guest Queue"])

api_router.include_router(
    guest_queue_admin_router,
    prefix="/guest-queue",
    tags=["Guest Queue - Counter"],
)
