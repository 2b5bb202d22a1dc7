from fastapi import Request, status

from app.utils.responses import ResponseBuilder


def handle_service_error(request: Request, error: Exception):
    """Centralized service error handler for booking and notification routers"""
    error_message = str(error)

    # Error codes may carry details (format: "ERROR_CODE: message")
    if ":" in error_message:
        error_code, details = [part.strip() for part in error_message.split(":", 1)]
    else:
        error_code, details = error_message, None

    error_status_mapping = {
        # Booking errors
        "BOOKING_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "INVALID_BOOKING_DAYS": status.HTTP_400_BAD_REQUEST,
        # Notification errors
        "NOTIFICATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "NOTIFICATION_ALREADY_SENT": status.HTTP_409_CONFLICT,
        "NOTIFICATION_CANCELLED": status.HTTP_409_CONFLICT,
    }

    status_code = error_status_mapping.get(
        error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    error_messages = {
        "BOOKING_NOT_FOUND": "Booking not found",
        "INVALID_BOOKING_DAYS": "Invalid service days",
        "NOTIFICATION_NOT_FOUND": "Scheduled notification not found",
        "NOTIFICATION_ALREADY_SENT": "Notification has already been sent",
        "NOTIFICATION_CANCELLED": "Cancelled notifications cannot be retried; reschedule the booking instead",
    }

    message = error_messages.get(error_code, "An unexpected error occurred")
    if details:
        message = f"{message}. {details}"

    return ResponseBuilder.error(
        request=request,
        message=message,
        error_code=error_code,
        status_code=status_code,
    )
