from typing import Optional

from app.db.models import BookingStatus, NotificationKind
from app.models.booking_models import BookingSnapshot
from app.services.notifications.registry import NotificationRuleRegistry, RuleGroup


class CancellationPolicy:
    """Which unsent kinds a booking's current state rules out, and why"""

    @staticmethod
    def suppression_reason(
        kind: NotificationKind, booking: BookingSnapshot
    ) -> Optional[str]:
        group = NotificationRuleRegistry.get_rule(kind).group

        if group == RuleGroup.INITIAL:
            # The quote announcement is never suppressed once scheduled
            return None

        if group == RuleGroup.QUOTE_CHASER:
            if booking.status == BookingStatus.CANCELLED:
                return "booking cancelled"
            if booking.status == BookingStatus.CONFIRMED:
                return "booking confirmed"
            if booking.has_advance_payment:
                return "advance payment received"
            return None

        if booking.status == BookingStatus.CANCELLED:
            return "booking cancelled"
        if booking.status != BookingStatus.CONFIRMED:
            return "booking not confirmed"
        if not booking.has_advance_payment:
            return "advance payment not received"
        return None

    @classmethod
    def should_suppress(cls, kind: NotificationKind, booking: BookingSnapshot) -> bool:
        return cls.suppression_reason(kind, booking) is not None

    @staticmethod
    def should_create_initial(booking: BookingSnapshot) -> bool:
        """Bookings created directly as cancelled never get a quote announcement."""
        return booking.status != BookingStatus.CANCELLED
