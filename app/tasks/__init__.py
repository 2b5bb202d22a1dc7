from .background import *
from .cron import *

__all__ = [
    "ensure_booking_notifications_task",
    # Scheduled/Cron Tasks
    "scheduled_notification_sweeper_task",
]
