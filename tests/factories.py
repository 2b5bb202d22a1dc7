import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.db.models import Booking, BookingStatus, NotificationKind, PaymentStatus
from app.models.booking_models import BookingSnapshot
from app.models.notification_models import DeliveryOutcome
from app.providers.notifier import Notifier
from app.utils.datetime_utils import Clock

# 2026-10-19 10:00 in Toronto (EDT, UTC-4)
T0 = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when a test moves it."""

    def __init__(self, current: datetime = T0):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current


class FakeNotifier(Notifier):
    """Records every send; outcome, delay and errors are configurable."""

    def __init__(
        self,
        outcome: Optional[DeliveryOutcome] = None,
        delay: float = 0,
        error: Optional[Exception] = None,
    ):
        self.outcome = outcome
        self.delay = delay
        self.error = error
        self.calls: List[dict] = []

    async def send(self, channel, destination, template_kind, variables):
        self.calls.append(
            {
                "channel": channel,
                "destination": destination,
                "kind": template_kind,
                "variables": variables,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if self.outcome:
            return self.outcome
        return DeliveryOutcome(
            success=True,
            provider_message_id=f"msg-{len(self.calls)}",
            delivery_status="sent",
        )

    def kinds(self) -> List[NotificationKind]:
        return [call["kind"] for call in self.calls]


def snapshot(booking: Booking) -> BookingSnapshot:
    return BookingSnapshot.from_model(booking)


def make_snapshot(
    status: BookingStatus = BookingStatus.QUOTED,
    advance_payment_status: PaymentStatus = PaymentStatus.PENDING,
    event_date: Optional[str] = None,
    appointment_time: Optional[str] = None,
    created_at: datetime = T0,
) -> BookingSnapshot:
    """In-memory booking for the pure calculators."""
    days = ()
    if event_date or appointment_time:
        days = ({"event_date": event_date, "appointment_time": appointment_time},)
    return BookingSnapshot(
        id="booking-1",
        status=status,
        advance_payment_status=advance_payment_status,
        days=days,
        created_at=created_at,
        customer_name="Ana Lima",
        customer_email="ana@example.com",
        customer_phone="4165550134",
    )
