from fastapi import APIRouter, Depends, Request, status

from app.services.booking_service import BookingService, get_booking_service
from app.services.notifications.scheduler import (
    NotificationScheduler,
    get_notification_scheduler,
)
from app.schemas.booking_schemas import (
    BookingResponse,
    CreateBookingRequest,
    UpdateBookingDaysRequest,
    UpdateBookingStatusRequest,
    UpdatePaymentStatusRequest,
)
from app.schemas.notification_schemas import (
    BookingNotificationStatusResponse,
    ScheduleResultResponse,
)
from app.utils.responses import ResponseBuilder
from app.utils.errors import BusinessLogicError
from app.utils.error_handlers import handle_service_error

bookings_router = APIRouter()


@bookings_router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
    description="Create a booking and schedule its notifications",
)
async def create_booking(
    request: Request,
    booking_data: CreateBookingRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await booking_service.create_booking(booking_data)

        return ResponseBuilder.success(
            request=request,
            data=BookingService.to_response(booking).model_dump(by_alias=True),
            message="Booking created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to create booking", error_code="BOOKING_CREATION_FAILED"
        )


@bookings_router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a booking",
)
async def get_booking(
    request: Request,
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await booking_service.get_booking(booking_id)

        return ResponseBuilder.success(
            request=request,
            data=BookingService.to_response(booking).model_dump(by_alias=True),
            message="Booking retrieved successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve booking",
            error_code="BOOKING_RETRIEVAL_FAILED",
        )


@bookings_router.patch(
    "/{booking_id}/status",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    summary="Change the booking status",
    description="Confirming or cancelling a booking cancels the quote chasers; reinstating a cancelled booking brings eligible reminders back",
)
async def update_booking_status(
    request: Request,
    booking_id: str,
    status_data: UpdateBookingStatusRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await booking_service.update_status(booking_id, status_data.status)

        return ResponseBuilder.success(
            request=request,
            data=BookingService.to_response(booking).model_dump(by_alias=True),
            message="Booking status updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update booking status",
            error_code="BOOKING_UPDATE_FAILED",
        )


@bookings_router.patch(
    "/{booking_id}/advance-payment",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    summary="Change the advance payment status",
)
async def update_advance_payment_status(
    request: Request,
    booking_id: str,
    payment_data: UpdatePaymentStatusRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await booking_service.update_advance_payment_status(
            booking_id, payment_data.status
        )

        return ResponseBuilder.success(
            request=request,
            data=BookingService.to_response(booking).model_dump(by_alias=True),
            message="Advance payment status updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update advance payment status",
            error_code="BOOKING_UPDATE_FAILED",
        )


@bookings_router.patch(
    "/{booking_id}/final-payment",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    summary="Change the final payment status",
)
async def update_final_payment_status(
    request: Request,
    booking_id: str,
    payment_data: UpdatePaymentStatusRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await booking_service.update_final_payment_status(
            booking_id, payment_data.status
        )

        return ResponseBuilder.success(
            request=request,
            data=BookingService.to_response(booking).model_dump(by_alias=True),
            message="Final payment status updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update final payment status",
            error_code="BOOKING_UPDATE_FAILED",
        )


@bookings_router.put(
    "/{booking_id}/days",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace the service days",
    description="Event and appointment reminders follow the new first day",
)
async def update_booking_days(
    request: Request,
    booking_id: str,
    days_data: UpdateBookingDaysRequest,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        booking = await booking_service.update_days(booking_id, days_data.days)

        return ResponseBuilder.success(
            request=request,
            data=BookingService.to_response(booking).model_dump(by_alias=True),
            message="Booking days updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update booking days",
            error_code="BOOKING_UPDATE_FAILED",
        )


@bookings_router.get(
    "/{booking_id}/notifications",
    response_model=BookingNotificationStatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Notification status for a booking",
    description="Every scheduled notification of the booking, with the admin badge per kind",
)
async def get_notification_status(
    request: Request,
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
):
    try:
        await booking_service.get_booking(booking_id)
        records = scheduler.list_notification_status(booking_id)
        response = BookingNotificationStatusResponse(
            booking_id=booking_id,
            statuses=scheduler.notification_status_overview(booking_id),
            notifications=[NotificationScheduler.to_response(r) for r in records],
        )

        return ResponseBuilder.success(
            request=request,
            data=response.model_dump(by_alias=True),
            message=f"Retrieved {len(records)} scheduled notifications",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve notification status",
            error_code="NOTIFICATION_STATUS_RETRIEVAL_FAILED",
        )


@bookings_router.get(
    "/{booking_id}/notifications/events",
    status_code=status.HTTP_200_OK,
    summary="Notification event log for a booking",
)
async def get_notification_events(
    request: Request,
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
):
    try:
        await booking_service.get_booking(booking_id)
        events = scheduler.list_events(booking_id)

        return ResponseBuilder.success(
            request=request,
            data=[
                NotificationScheduler.event_to_response(event).model_dump(by_alias=True)
                for event in events
            ],
            message=f"Retrieved {len(events)} notification events",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve notification events",
            error_code="NOTIFICATION_EVENTS_RETRIEVAL_FAILED",
        )


@bookings_router.post(
    "/{booking_id}/notifications/reschedule",
    response_model=ScheduleResultResponse,
    status_code=status.HTTP_200_OK,
    summary="Re-run notification scheduling",
    description="Re-evaluates cancelled reminders from scratch and fills in any missing ones",
)
async def reschedule_notifications(
    request: Request,
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        result = await booking_service.run_scheduling(booking_id, reinstate=True)
        if result is None:
            raise ValueError("BOOKING_NOT_FOUND")

        return ResponseBuilder.success(
            request=request,
            data=ScheduleResultResponse(**result.model_dump()).model_dump(
                by_alias=True
            ),
            message=f"Rescheduled {len(result.rescheduled)} notifications",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to reschedule notifications",
            error_code="NOTIFICATION_RESCHEDULE_FAILED",
        )
