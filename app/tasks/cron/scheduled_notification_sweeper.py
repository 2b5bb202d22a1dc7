import asyncio

from app.celery import celery
from app.db.session import get_sync_session
from app.providers.notifier import get_default_notifier
from app.services.notifications.sweeper import DueSweeper
from app.utils.context import set_request_id
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def scheduled_notification_sweeper_task(self, request_id: str):
    """
    Periodic sweep dispatching every scheduled notification that is due.
    Runs every NOTIFICATION_SWEEP_INTERVAL_MINUTES from Celery Beat. Overlapping
    runs are safe, each record is claimed before it is sent.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_scheduled_notification_sweeper(request_id))


async def _async_scheduled_notification_sweeper(request_id: str):
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    for db_session in get_sync_session():
        try:
            sweeper = DueSweeper(db_session, get_default_notifier())
            result = await sweeper.run_sweep()

            logger.info(
                "Scheduled notification sweep completed",
                total_due=result.total_due,
                sent=result.sent,
                skipped=result.skipped,
                failed=result.failed,
                already_claimed=result.already_claimed,
                request_id=request_id,
            )

            return {
                "success": True,
                **result.to_dict(),
                "request_id": request_id,
            }

        except Exception as e:
            # The next beat tick picks up whatever is still due
            logger.error(
                "Scheduled notification sweep task exception",
                request_id=request_id,
                error=str(e),
            )

            return {
                "success": False,
                "error": str(e),
                "request_id": request_id,
            }
