from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.session import get_sync_session
from app.db.models import (
    NotificationEvent,
    NotificationEventStatus,
    NotificationKind,
    ScheduledNotification,
)
from app.models.booking_models import BookingSnapshot
from app.models.notification_models import BookingAnchors, ScheduleResult
from app.services.notifications.cancellation_policy import CancellationPolicy
from app.services.notifications.registry import (
    NotificationRule,
    NotificationRuleRegistry,
)
from app.services.notifications.schedule_calculator import ScheduleCalculator
from app.services.notifications.store import NotificationRecordStore
from app.schemas.notification_schemas import (
    NotificationEventResponse,
    ScheduledNotificationResponse,
)
from app.utils.datetime_utils import Clock, SystemClock, from_naive_utc, to_naive_utc
from app.utils.logging import get_logger

logger = get_logger()

EVENT_DATE_UNAVAILABLE = "event date unavailable"

# Admin badge values
STATUS_NOT_SCHEDULED = "Not Scheduled"
STATUS_SCHEDULED = "Scheduled"
STATUS_SENT = "Sent"
STATUS_CANCELLED = "Cancelled"


def display_status(record: Optional[ScheduledNotification]) -> str:
    """Badge shown in the admin UI, derived from the record fields only"""
    if record is None:
        return STATUS_NOT_SCHEDULED
    if record.sent:
        return STATUS_SENT
    if record.cancelled:
        return STATUS_CANCELLED
    return STATUS_SCHEDULED


class NotificationScheduler:
    """
    Idempotent upsert of a booking's scheduled notifications.

    `ensure_scheduled` is safe to call after every booking mutation: it
    creates each missing record once, keeps pending records in line with the
    booking's anchors and state, and never touches sent records. Cancelled
    records only come back through `reschedule`.
    """

    def __init__(self, db_session: Session, clock: Optional[Clock] = None):
        self.store = NotificationRecordStore(db_session)
        self.clock = clock or SystemClock()
        self.immediate_window = timedelta(
            minutes=settings.IMMEDIATE_DISPATCH_WINDOW_MINUTES
        )
        self.claim_timeout = timedelta(
            minutes=settings.NOTIFICATION_CLAIM_TIMEOUT_MINUTES
        )

    def ensure_scheduled(self, booking: BookingSnapshot) -> ScheduleResult:
        now = self.clock.now()
        anchors = ScheduleCalculator.build_anchors(booking)
        result = ScheduleResult(booking_id=booking.id)

        for rule in NotificationRuleRegistry.list_rules():
            self._ensure_kind(rule, booking, anchors, now, result)

        logger.info(
            f"Scheduling pass for booking {booking.id}: "
            f"{len(result.created)} created, {len(result.updated)} updated, "
            f"{len(result.cancelled)} cancelled"
        )
        return result

    def _ensure_kind(
        self,
        rule: NotificationRule,
        booking: BookingSnapshot,
        anchors: BookingAnchors,
        now: datetime,
        result: ScheduleResult,
    ) -> None:
        kind = rule.kind
        record = self.store.get(booking.id, kind)
        suppression = CancellationPolicy.suppression_reason(kind, booking)

        if record is None:
            self._create(rule, booking, anchors, now, suppression, result)
            return

        if record.sent:
            result.unchanged.append(kind.value)
            return

        if record.cancelled:
            # Monotonic: the reason may change, the flag never flips back here
            if (
                suppression
                and suppression != record.cancel_reason
                and self.store.cancel(record.id, suppression)
            ):
                result.updated.append(kind.value)
            else:
                result.unchanged.append(kind.value)
            return

        if suppression:
            self._cancel(record, suppression, now, result)
            return

        decision = ScheduleCalculator.compute(kind, anchors, now)
        if decision is None:
            self._cancel(record, EVENT_DATE_UNAVAILABLE, now, result)
            return

        if to_naive_utc(decision.scheduled_for) == record.scheduled_for:
            # Anchors unchanged; a record that merely became due stays pending
            result.unchanged.append(kind.value)
            self._collect_due_now(record.id, kind, decision.scheduled_for, now, result)
            return

        if decision.cancelled:
            self._cancel(record, decision.cancel_reason, now, result)
            return

        if self.store.update_schedule(record.id, decision.scheduled_for):
            self.store.append_record_event(
                record,
                NotificationEventStatus.RESCHEDULED,
                detail=f"moved to {decision.scheduled_for.isoformat()}",
            )
            result.updated.append(kind.value)
            self._collect_due_now(record.id, kind, decision.scheduled_for, now, result)

    def _create(
        self,
        rule: NotificationRule,
        booking: BookingSnapshot,
        anchors: BookingAnchors,
        now: datetime,
        suppression: Optional[str],
        result: ScheduleResult,
    ) -> None:
        kind = rule.kind
        if kind == NotificationKind.INITIAL:
            if not CancellationPolicy.should_create_initial(booking):
                return
        elif suppression:
            # Never eligible so far: nothing is written
            return

        decision = ScheduleCalculator.compute(kind, anchors, now)
        if decision is None:
            return

        record, created = self.store.insert(
            booking_id=booking.id,
            kind=kind,
            channel=rule.channel,
            scheduled_for=decision.scheduled_for,
            cancel_reason=decision.cancel_reason,
        )
        if not created or record is None:
            result.unchanged.append(kind.value)
            return

        result.created.append(kind.value)
        if decision.cancelled:
            self.store.append_record_event(
                record, NotificationEventStatus.CANCELLED, detail=decision.cancel_reason
            )
            return

        self.store.append_record_event(
            record,
            NotificationEventStatus.SCHEDULED,
            detail=decision.scheduled_for.isoformat(),
        )
        self._collect_due_now(record.id, kind, decision.scheduled_for, now, result)

    def _cancel(
        self,
        record: ScheduledNotification,
        reason: str,
        now: datetime,
        result: ScheduleResult,
    ) -> None:
        if not self.store.cancel(
            record.id, reason, stale_before=now - self.claim_timeout
        ):
            # Claimed by a sweep right now: its final check has the last word
            logger.info(
                f"{record.kind.value} for booking {record.booking_id} is being sent, not cancelled"
            )
            result.unchanged.append(record.kind.value)
            return

        self.store.append_record_event(
            record, NotificationEventStatus.CANCELLED, detail=reason
        )
        result.cancelled.append(record.kind.value)
        logger.info(
            f"Cancelled {record.kind.value} for booking {record.booking_id}: {reason}"
        )

    def _collect_due_now(
        self,
        record_id: str,
        kind: NotificationKind,
        scheduled_for: datetime,
        now: datetime,
        result: ScheduleResult,
    ) -> None:
        if ScheduleCalculator.is_due_soon(
            kind, scheduled_for, now, self.immediate_window
        ):
            result.due_now.append(record_id)

    def reschedule(self, booking: BookingSnapshot) -> ScheduleResult:
        """
        Re-evaluate cancelled, unsent records from scratch, e.g. after a
        cancelled booking is reinstated. Records whose kind is eligible again
        go back to pending with a fresh fire-time and retry budget.
        """
        now = self.clock.now()
        anchors = ScheduleCalculator.build_anchors(booking)
        rescheduled: List[str] = []

        for rule in NotificationRuleRegistry.list_rules():
            kind = rule.kind
            record = self.store.get(booking.id, kind)
            if record is None or record.sent or not record.cancelled:
                continue
            if CancellationPolicy.should_suppress(kind, booking):
                continue

            decision = ScheduleCalculator.compute(kind, anchors, now)
            if decision is None or decision.cancelled:
                continue

            if self.store.reinstate(record.id, decision.scheduled_for):
                self.store.append_record_event(
                    record,
                    NotificationEventStatus.RESCHEDULED,
                    detail=f"reinstated for {decision.scheduled_for.isoformat()}",
                )
                rescheduled.append(kind.value)

        # Picks up kinds that never had a record and collects due-now ids
        result = self.ensure_scheduled(booking)
        result.rescheduled = rescheduled
        logger.info(
            f"Rescheduled {len(rescheduled)} notifications for booking {booking.id}"
        )
        return result

    def list_notification_status(
        self, booking_id: str
    ) -> Sequence[ScheduledNotification]:
        return self.store.list_for_booking(booking_id)

    def notification_status_overview(self, booking_id: str) -> Dict[str, str]:
        """Badge per kind, including kinds that have no record"""
        records = {
            record.kind: record for record in self.store.list_for_booking(booking_id)
        }
        return {
            rule.kind.value: display_status(records.get(rule.kind))
            for rule in NotificationRuleRegistry.list_rules()
        }

    def retry_notification(self, record_id: str) -> ScheduledNotification:
        """Give a failed, unsent record a fresh attempt on the next sweep"""
        record = self.store.get_by_id(record_id)
        if record is None:
            raise ValueError("NOTIFICATION_NOT_FOUND")
        if record.sent:
            raise ValueError("NOTIFICATION_ALREADY_SENT")
        if record.cancelled:
            # Monotonic: the reason may change, the flag never flips back here
            raise ValueError("NOTIFICATION_CANCELLED")

        self.store.reset_for_retry(record.id)
        self.store.append_record_event(
            record,
            NotificationEventStatus.RETRIED,
            detail=f"previous error: {record.last_error}" if record.last_error else None,
        )
        logger.info(f"Notification {record.id} queued for retry")
        return self.store.get_by_id(record.id)

    def list_events(self, booking_id: str) -> Sequence[NotificationEvent]:
        return self.store.list_events(booking_id)

    @staticmethod
    def to_response(record: ScheduledNotification) -> ScheduledNotificationResponse:
        return ScheduledNotificationResponse(
            id=record.id,
            booking_id=record.booking_id,
            kind=record.kind.value,
            channel=record.channel.value,
            display_status=display_status(record),
            scheduled_for=from_naive_utc(record.scheduled_for),
            sent=record.sent,
            sent_at=from_naive_utc(record.sent_at) if record.sent_at else None,
            cancelled=record.cancelled,
            cancel_reason=record.cancel_reason,
            last_error=record.last_error,
            provider_message_id=record.provider_message_id,
            delivered=record.delivered,
            delivery_status=record.delivery_status,
            attempts=record.attempts,
        )

    @staticmethod
    def event_to_response(event: NotificationEvent) -> NotificationEventResponse:
        return NotificationEventResponse(
            id=event.id,
            booking_id=event.booking_id,
            notification_id=event.notification_id,
            kind=event.kind.value,
            channel=event.channel.value if event.channel else None,
            status=event.status.value,
            detail=event.detail,
            created_at=from_naive_utc(event.created_at),
        )


def get_notification_scheduler(
    db: Session = Depends(get_sync_session),
) -> NotificationScheduler:
    """Dependency to provide NotificationScheduler instance"""
    return NotificationScheduler(db)
