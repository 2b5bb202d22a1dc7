from .booking_notifications import ensure_booking_notifications_task

__all__ = [
    "ensure_booking_notifications_task",
]
