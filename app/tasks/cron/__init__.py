from .scheduled_notification_sweeper import scheduled_notification_sweeper_task

__all__ = [
    "scheduled_notification_sweeper_task",
]
