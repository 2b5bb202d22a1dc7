import asyncio
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import ChannelType, ScheduledNotification
from app.models.booking_models import BookingSnapshot
from app.models.notification_models import DeliveryOutcome
from app.providers.notifier import Notifier
from app.services.notifications.delivery_tracker import DeliveryTracker
from app.services.notifications.schedule_calculator import ScheduleCalculator
from app.utils.datetime_utils import format_event_date
from app.utils.errors import NotificationDeliveryError
from app.utils.logging import get_logger

logger = get_logger()


def build_template_variables(booking: BookingSnapshot) -> Dict[str, str]:
    anchors = ScheduleCalculator.build_anchors(booking)
    quote_link = f"{settings.BASE_URL}/book/{booking.id}"
    return {
        "customer_name": booking.customer_name,
        "quote_link": quote_link,
        "book_call_link": f"{quote_link}#book-call",
        "event_date": (
            format_event_date(anchors.event_date) if anchors.event_date else ""
        ),
        "appointment_time": anchors.appointment_time.strftime("%I:%M %p").lstrip("0"),
    }


def destination_for(channel: ChannelType, booking: BookingSnapshot) -> Optional[str]:
    if channel == ChannelType.EMAIL:
        return booking.customer_email
    return booking.customer_phone


class NotificationDispatcher:
    """Turns a claimed record into one provider call and records the outcome"""

    def __init__(
        self,
        db_session: Session,
        notifier: Notifier,
        timeout_seconds: Optional[float] = None,
    ):
        self.notifier = notifier
        self.tracker = DeliveryTracker(db_session)
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.NOTIFICATION_SEND_TIMEOUT_SECONDS
        )

    async def _send(
        self, record: ScheduledNotification, booking: BookingSnapshot
    ) -> DeliveryOutcome:
        destination = destination_for(record.channel, booking)
        if not destination:
            return DeliveryOutcome(
                success=False,
                error_message=f"No {record.channel.value} destination on booking",
            )

        try:
            return await asyncio.wait_for(
                self.notifier.send(
                    record.channel,
                    destination,
                    record.kind,
                    build_template_variables(booking),
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return DeliveryOutcome(
                success=False,
                error_message=f"Provider timed out after {self.timeout_seconds}s",
            )
        except NotificationDeliveryError as e:
            return DeliveryOutcome(success=False, error_message=e.message)
        except Exception as e:
            # A claimed record must always end with its outcome written
            logger.opt(exception=e).error(
                f"Notifier raised on {record.kind.value} {record.id}: {str(e)}"
            )
            return DeliveryOutcome(success=False, error_message=str(e))

    async def dispatch(
        self, record: ScheduledNotification, booking: BookingSnapshot, now: datetime
    ) -> DeliveryOutcome:
        outcome = await self._send(record, booking)
        if outcome.success:
            self.tracker.record_success(record, outcome, now)
        else:
            self.tracker.record_failure(
                record, outcome.error_message or "Unknown delivery error"
            )
        return outcome
