from fastapi import APIRouter, Depends, Request, status

from app.middlewares.cron_auth import require_cron_secret
from app.services.notifications.scheduler import (
    NotificationScheduler,
    get_notification_scheduler,
)
from app.services.notifications.sweeper import DueSweeper, get_due_sweeper
from app.schemas.notification_schemas import (
    ScheduledNotificationResponse,
    SweepResponse,
)
from app.utils.responses import ResponseBuilder
from app.utils.errors import BusinessLogicError
from app.utils.error_handlers import handle_service_error

notifications_router = APIRouter(dependencies=[Depends(require_cron_secret)])


@notifications_router.post(
    "/sweep",
    response_model=SweepResponse,
    status_code=status.HTTP_200_OK,
    summary="Send due notifications",
    description="Cron entry point. Safe to call more often than the nominal interval.",
)
async def run_notification_sweep(
    request: Request,
    sweeper: DueSweeper = Depends(get_due_sweeper),
):
    try:
        result = await sweeper.run_sweep()
        data = SweepResponse(**result.to_dict()).model_dump(by_alias=True)

        if result.errors:
            return ResponseBuilder.warning(
                request=request,
                data=data,
                message=f"Sweep finished with {result.failed} failed notifications",
                warnings=result.errors,
            )

        return ResponseBuilder.success(
            request=request,
            data=data,
            message=f"Sweep finished: {result.sent} sent, {result.skipped} skipped",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to run notification sweep",
            error_code="NOTIFICATION_SWEEP_FAILED",
        )


@notifications_router.post(
    "/{record_id}/retry",
    response_model=ScheduledNotificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Retry a failed notification",
    description="Resets the attempt budget of an unsent, uncancelled notification so the next sweep picks it up",
)
async def retry_notification(
    request: Request,
    record_id: str,
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
):
    try:
        record = scheduler.retry_notification(record_id)

        return ResponseBuilder.success(
            request=request,
            data=NotificationScheduler.to_response(record).model_dump(by_alias=True),
            message="Notification queued for retry",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retry notification",
            error_code="NOTIFICATION_RETRY_FAILED",
        )
