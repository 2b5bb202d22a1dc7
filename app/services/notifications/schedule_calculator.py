import math
from datetime import datetime, timedelta
from typing import Optional

from app.db.models import NotificationKind
from app.models.booking_models import BookingSnapshot
from app.models.notification_models import BookingAnchors, ScheduleDecision
from app.services.notifications.registry import (
    AnchorType,
    NotificationRule,
    NotificationRuleRegistry,
    PastGuard,
)
from app.utils.datetime_utils import (
    add_civil_days,
    add_elapsed,
    combine_local,
    local_midnight,
    parse_appointment_time,
    parse_event_date,
    to_business_tz,
)
from app.utils.logging import get_logger

logger = get_logger()

REMINDER_DATE_PASSED = "reminder date has passed"


class ScheduleCalculator:
    """Pure fire-time calculations, all done in the business timezone"""

    @staticmethod
    def build_anchors(booking: BookingSnapshot) -> BookingAnchors:
        """Resolve the anchors of a booking. An unreadable event date leaves event kinds inapplicable."""
        first_day = booking.first_day
        event_date = None

        if first_day and first_day.event_date:
            try:
                event_date = parse_event_date(first_day.event_date)
            except ValueError as e:
                logger.warning(f"Booking {booking.id}: {e}, event kinds skipped")

        return BookingAnchors(
            created_at=to_business_tz(booking.created_at),
            event_date=event_date,
            appointment_time=parse_appointment_time(
                first_day.appointment_time if first_day else None
            ),
        )

    @staticmethod
    def days_until(anchor: datetime, now: datetime) -> int:
        """Whole days from now until the anchor, rounded up"""
        return math.ceil((anchor - now) / timedelta(days=1))

    @staticmethod
    def _anchor_instant(rule: NotificationRule, anchors: BookingAnchors) -> Optional[datetime]:
        if rule.anchor == AnchorType.CREATED_AT:
            return anchors.created_at
        if anchors.event_date is None:
            return None
        if rule.anchor == AnchorType.EVENT_DATE:
            return local_midnight(anchors.event_date)
        return combine_local(anchors.event_date, anchors.appointment_time)

    @staticmethod
    def _apply_offset(rule: NotificationRule, anchor: datetime) -> datetime:
        fire_at = anchor
        if rule.civil_days:
            fire_at = add_civil_days(fire_at, rule.civil_days)
        if rule.elapsed:
            fire_at = add_elapsed(fire_at, rule.elapsed)
        return to_business_tz(fire_at)

    @classmethod
    def compute(
        cls,
        kind: NotificationKind,
        anchors: BookingAnchors,
        now: datetime,
    ) -> Optional[ScheduleDecision]:
        """
        Fire-time for one kind.

        Returns None when the kind does not apply to the booking's shape (event
        kinds without a readable event date). Timing rules that rule the kind
        out return a decision carrying a cancel reason instead.
        """
        rule = NotificationRuleRegistry.get_rule(kind)
        anchor = cls._anchor_instant(rule, anchors)
        if anchor is None:
            return None

        now = to_business_tz(now)
        fire_at = cls._apply_offset(rule, anchor)

        if rule.min_lead is not None and anchor - now <= rule.min_lead:
            lead_days = rule.min_lead.days
            return ScheduleDecision(
                scheduled_for=fire_at,
                cancel_reason=(
                    f"too close to event: only {cls.days_until(anchor, now)} days away "
                    f"(need more than {lead_days})"
                ),
            )

        if fire_at < now:
            if rule.past_guard == PastGuard.CANCEL_IF_PAST:
                return ScheduleDecision(
                    scheduled_for=fire_at, cancel_reason=REMINDER_DATE_PASSED
                )
            if (
                rule.past_guard == PastGuard.CANCEL_IF_PAST_UNLESS_EVENT_TODAY
                and anchors.event_date != now.date()
            ):
                return ScheduleDecision(
                    scheduled_for=fire_at, cancel_reason=REMINDER_DATE_PASSED
                )

        return ScheduleDecision(scheduled_for=fire_at)

    @classmethod
    def compute_for_booking(
        cls, kind: NotificationKind, booking: BookingSnapshot, now: datetime
    ) -> Optional[ScheduleDecision]:
        return cls.compute(kind, cls.build_anchors(booking), now)

    @staticmethod
    def is_due_soon(
        kind: NotificationKind,
        scheduled_for: datetime,
        now: datetime,
        window: timedelta,
    ) -> bool:
        """
        True when a same-day reminder should go out right away rather than wait
        for the next sweep.
        """
        if not NotificationRuleRegistry.get_rule(kind).same_day:
            return False
        return to_business_tz(scheduled_for) <= to_business_tz(now) + window
