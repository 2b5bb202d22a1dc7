from .registry import NotificationRuleRegistry
from .schedule_calculator import ScheduleCalculator
from .cancellation_policy import CancellationPolicy
from .scheduler import NotificationScheduler, display_status
from .sweeper import DueSweeper
from .delivery_tracker import DeliveryTracker

__all__ = [
    "NotificationRuleRegistry",
    "ScheduleCalculator",
    "CancellationPolicy",
    "NotificationScheduler",
    "DueSweeper",
    "DeliveryTracker",
    "display_status",
]
