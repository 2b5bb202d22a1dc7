from fastapi import APIRouter

from app.routers.bookings import bookings_router
from app.routers.notifications import notifications_router
from app.routers.health import health_router

main_router = APIRouter()

# Include domain-based routers
main_router.include_router(bookings_router, prefix="/bookings", tags=["Bookings"])
main_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)
main_router.include_router(health_router, prefix="/health", tags=["Health"])
