from datetime import datetime
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.models import NotificationEventStatus, ScheduledNotification
from app.db.session import get_sync_session
from app.models.notification_models import DeliveryOutcome
from app.services.notifications.store import NotificationRecordStore
from app.utils.datetime_utils import to_naive_utc
from app.utils.logging import get_logger

logger = get_logger()

# Twilio message statuses that mean the handset has the message
DELIVERED_STATUSES = {"delivered", "read"}
UNDELIVERED_STATUSES = {"failed", "undelivered"}


class DeliveryTracker:
    """Writes dispatch outcomes back to records and the event log"""

    def __init__(self, db_session: Session):
        self.store = NotificationRecordStore(db_session)

    def record_processing(self, record: ScheduledNotification) -> None:
        self.store.append_record_event(
            record,
            NotificationEventStatus.PROCESSING,
            detail=f"attempt {record.attempts}",
        )

    def record_success(
        self, record: ScheduledNotification, outcome: DeliveryOutcome, now: datetime
    ) -> bool:
        updated = self.store.update_where(
            "mark scheduled notification sent",
            record.id,
            ScheduledNotification.sent.is_(False),
            sent=True,
            sent_at=to_naive_utc(now),
            # The message went out; a sent record is never also cancelled
            cancelled=False,
            cancel_reason=None,
            provider_message_id=outcome.provider_message_id,
            delivered=outcome.delivered,
            delivery_status=outcome.delivery_status,
            last_error=None,
        )
        if updated:
            self.store.append_record_event(
                record,
                NotificationEventStatus.SENT,
                detail=outcome.provider_message_id,
            )
            logger.info(
                f"Sent {record.kind.value} for booking {record.booking_id} via {record.channel.value}"
            )
        return updated

    def record_failure(self, record: ScheduledNotification, error_message: str) -> bool:
        # Releasing the claim lets an operator retry; the attempt stays spent
        updated = self.store.update_where(
            "record notification failure",
            record.id,
            ScheduledNotification.sent.is_(False),
            last_error=error_message,
            claimed_at=None,
        )
        self.store.append_record_event(
            record, NotificationEventStatus.FAILED, detail=error_message
        )
        logger.error(
            f"Failed to send {record.kind.value} for booking {record.booking_id}: {error_message}"
        )
        return updated

    def record_skipped(self, record: ScheduledNotification, reason: str) -> bool:
        """The final eligibility check failed: the record is cancelled, not sent"""
        updated = self.store.cancel(record.id, reason)
        self.store.append_record_event(
            record, NotificationEventStatus.SKIPPED, detail=reason
        )
        logger.info(
            f"Skipped {record.kind.value} for booking {record.booking_id}: {reason}"
        )
        return updated

    def record_delivery_status(
        self, provider_message_id: str, delivery_status: str
    ) -> Optional[ScheduledNotification]:
        """Apply a provider status callback. `sent` is never changed here."""
        record = self.store.get_by_provider_message_id(provider_message_id)
        if record is None:
            logger.warning(
                f"Delivery status {delivery_status} for unknown message {provider_message_id}"
            )
            return None

        delivery_status = delivery_status.lower()
        # A late "sent" callback must not undo an earlier "delivered"
        delivered = record.delivered or delivery_status in DELIVERED_STATUSES
        self.store.update_where(
            "record delivery status",
            record.id,
            delivered=delivered,
            delivery_status=delivery_status,
        )

        if delivery_status in DELIVERED_STATUSES:
            self.store.append_record_event(
                record, NotificationEventStatus.DELIVERED, detail=delivery_status
            )
        elif delivery_status in UNDELIVERED_STATUSES:
            self.store.append_record_event(
                record,
                NotificationEventStatus.FAILED,
                detail=f"delivery status {delivery_status}",
            )
        return self.store.get_by_id(record.id)


def get_delivery_tracker(db: Session = Depends(get_sync_session)) -> DeliveryTracker:
    """Dependency to provide DeliveryTracker instance"""
    return DeliveryTracker(db)
