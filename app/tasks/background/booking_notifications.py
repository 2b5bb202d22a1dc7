import asyncio

from app.celery import celery
from app.db.session import get_sync_session
from app.services.booking_service import BookingService
from app.utils.context import set_request_id
from app.utils.errors import DatabaseError
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def ensure_booking_notifications_task(
    self, request_id: str, booking_id: str, reinstate: bool = False
):
    """
    Run notification scheduling for one booking outside the request.
    Scheduling is idempotent, so a retry after a store outage is safe.

    Args:
        request_id: The request ID from the original HTTP request
        booking_id: ID of the booking that changed
        reinstate: Also bring back cancelled reminders that are eligible again
    """
    return asyncio.run(
        _async_ensure_booking_notifications(self, request_id, booking_id, reinstate)
    )


async def _async_ensure_booking_notifications(
    task, request_id: str, booking_id: str, reinstate: bool
):
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    for db_session in get_sync_session():
        try:
            service = BookingService(db_session)
            result = await service.run_scheduling(booking_id, reinstate=reinstate)

            if result is None:
                return {
                    "success": False,
                    "error": "Booking not found",
                    "booking_id": booking_id,
                    "request_id": request_id,
                }

            logger.info(
                "Booking notifications scheduled",
                booking_id=booking_id,
                created=len(result.created),
                updated=len(result.updated),
                cancelled=len(result.cancelled),
                rescheduled=len(result.rescheduled),
                request_id=request_id,
            )
            return {
                "success": True,
                "booking_id": booking_id,
                "created": result.created,
                "updated": result.updated,
                "cancelled": result.cancelled,
                "rescheduled": result.rescheduled,
                "request_id": request_id,
            }

        except DatabaseError as e:
            logger.error(
                "Booking notification scheduling failed",
                booking_id=booking_id,
                error=e.message,
                request_id=request_id,
            )

            # Retry with exponential backoff for store outages
            if task.request.retries < task.max_retries:
                retry_delay = min(2**task.request.retries * 60, 300)
                raise task.retry(countdown=retry_delay)

            return {
                "success": False,
                "error": e.message,
                "booking_id": booking_id,
                "request_id": request_id,
            }
