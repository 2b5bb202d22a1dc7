from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import (
    ChannelType,
    NotificationEvent,
    NotificationEventStatus,
    NotificationKind,
    ScheduledNotification,
)
from app.utils.datetime_utils import to_naive_utc
from app.utils.errors import DatabaseError
from app.utils.logging import get_logger

logger = get_logger()


class NotificationRecordStore:
    """
    Persistence for scheduled notification records and their event log.

    Every mutation commits on its own. State changes on records are
    conditional updates so that a scheduler pass and a sweep touching the
    same row cannot overwrite each other.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    # Reads
    def get(
        self, booking_id: str, kind: NotificationKind
    ) -> Optional[ScheduledNotification]:
        return self.db.execute(
            select(ScheduledNotification)
            .where(
                ScheduledNotification.booking_id == booking_id,
                ScheduledNotification.kind == kind,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_id(self, record_id: str) -> Optional[ScheduledNotification]:
        return self.db.execute(
            select(ScheduledNotification)
            .where(ScheduledNotification.id == record_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_provider_message_id(
        self, provider_message_id: str
    ) -> Optional[ScheduledNotification]:
        return self.db.execute(
            select(ScheduledNotification)
            .where(ScheduledNotification.provider_message_id == provider_message_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_for_booking(self, booking_id: str) -> Sequence[ScheduledNotification]:
        return (
            self.db.execute(
                select(ScheduledNotification)
                .where(ScheduledNotification.booking_id == booking_id)
                .order_by(ScheduledNotification.scheduled_for)
                .execution_options(populate_existing=True)
            )
            .scalars()
            .all()
        )

    def list_events(self, booking_id: str) -> Sequence[NotificationEvent]:
        return (
            self.db.execute(
                select(NotificationEvent)
                .where(NotificationEvent.booking_id == booking_id)
                .order_by(NotificationEvent.created_at)
            )
            .scalars()
            .all()
        )

    def find_due(
        self,
        now: datetime,
        limit: int,
        max_attempts: int,
        stale_before: datetime,
    ) -> List[str]:
        """Ids of unsent, uncancelled records whose time has come and that still have attempts left"""
        stmt = (
            select(ScheduledNotification.id)
            .where(
                ScheduledNotification.sent.is_(False),
                ScheduledNotification.cancelled.is_(False),
                ScheduledNotification.scheduled_for <= to_naive_utc(now),
                ScheduledNotification.attempts < max_attempts,
                or_(
                    ScheduledNotification.claimed_at.is_(None),
                    ScheduledNotification.claimed_at < to_naive_utc(stale_before),
                ),
            )
            .order_by(ScheduledNotification.scheduled_for)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    # Writes
    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise DatabaseError(f"Failed to {action}") from e

    def update_where(self, action: str, record_id: str, *conditions, **values) -> bool:
        try:
            result = self.db.execute(
                update(ScheduledNotification)
                .where(and_(ScheduledNotification.id == record_id, *conditions))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action} for record {record_id}: {str(e)}")
            raise DatabaseError(f"Failed to {action}") from e
        self._commit(action)
        return result.rowcount == 1

    def insert(
        self,
        booking_id: str,
        kind: NotificationKind,
        channel: ChannelType,
        scheduled_for: datetime,
        cancel_reason: Optional[str] = None,
    ) -> Tuple[Optional[ScheduledNotification], bool]:
        """
        Insert the single record for (booking, kind).

        Returns the record and whether this call created it. Losing an insert
        race to a concurrent pass is not an error: the existing row is returned.
        """
        record = ScheduledNotification(
            booking_id=booking_id,
            kind=kind,
            channel=channel,
            scheduled_for=to_naive_utc(scheduled_for),
            cancelled=cancel_reason is not None,
            cancel_reason=cancel_reason,
        )
        try:
            self.db.add(record)
            self.db.commit()
            return record, True
        except IntegrityError:
            self.db.rollback()
            logger.info(
                f"Record for booking {booking_id} kind {kind.value} already exists, keeping it"
            )
            return self.get(booking_id, kind), False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to insert {kind.value} for booking {booking_id}: {str(e)}")
            raise DatabaseError("Failed to insert scheduled notification") from e

    def cancel(
        self, record_id: str, reason: str, stale_before: Optional[datetime] = None
    ) -> bool:
        """
        Cancel an unsent record, or refresh the reason of an already cancelled one.

        With `stale_before`, a record claimed by a sweep since then is left
        alone; the sweep's own final check suppresses it.
        """
        conditions = [ScheduledNotification.sent.is_(False)]
        if stale_before is not None:
            conditions.append(
                or_(
                    ScheduledNotification.claimed_at.is_(None),
                    ScheduledNotification.claimed_at < to_naive_utc(stale_before),
                )
            )
        return self.update_where(
            "cancel scheduled notification",
            record_id,
            *conditions,
            cancelled=True,
            cancel_reason=reason,
        )

    def update_schedule(self, record_id: str, scheduled_for: datetime) -> bool:
        return self.update_where(
            "move scheduled notification",
            record_id,
            ScheduledNotification.sent.is_(False),
            ScheduledNotification.cancelled.is_(False),
            scheduled_for=to_naive_utc(scheduled_for),
        )

    def reinstate(self, record_id: str, scheduled_for: datetime) -> bool:
        """Return a cancelled, unsent record to pending with a fresh retry budget"""
        return self.update_where(
            "reinstate scheduled notification",
            record_id,
            ScheduledNotification.sent.is_(False),
            ScheduledNotification.cancelled.is_(True),
            scheduled_for=to_naive_utc(scheduled_for),
            cancelled=False,
            cancel_reason=None,
            last_error=None,
            attempts=0,
            claimed_at=None,
        )

    def claim(
        self,
        record_id: str,
        now: datetime,
        max_attempts: int,
        stale_before: datetime,
    ) -> bool:
        """
        Take a due record for dispatch. Exactly one concurrent caller wins; the
        claim also spends one attempt.
        """
        return self.update_where(
            "claim scheduled notification",
            record_id,
            ScheduledNotification.sent.is_(False),
            ScheduledNotification.cancelled.is_(False),
            ScheduledNotification.attempts < max_attempts,
            or_(
                ScheduledNotification.claimed_at.is_(None),
                ScheduledNotification.claimed_at < to_naive_utc(stale_before),
            ),
            claimed_at=to_naive_utc(now),
            attempts=ScheduledNotification.attempts + 1,
        )

    def reset_for_retry(self, record_id: str) -> bool:
        return self.update_where(
            "reset scheduled notification for retry",
            record_id,
            ScheduledNotification.sent.is_(False),
            ScheduledNotification.cancelled.is_(False),
            attempts=0,
            last_error=None,
            claimed_at=None,
        )

    def append_event(
        self,
        booking_id: str,
        kind: NotificationKind,
        status: NotificationEventStatus,
        detail: Optional[str] = None,
        notification_id: Optional[str] = None,
        channel: Optional[ChannelType] = None,
    ) -> None:
        """Append to the event log. A failed log write is reported but never raised."""
        try:
            self.db.add(
                NotificationEvent(
                    booking_id=booking_id,
                    notification_id=notification_id,
                    kind=kind,
                    channel=channel,
                    status=status,
                    detail=detail,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(
                f"Could not log {status.value} event for booking {booking_id} "
                f"kind {kind.value}: {str(e)}"
            )

    def append_record_event(
        self,
        record: ScheduledNotification,
        status: NotificationEventStatus,
        detail: Optional[str] = None,
    ) -> None:
        self.append_event(
            booking_id=record.booking_id,
            kind=record.kind,
            status=status,
            detail=detail,
            notification_id=record.id,
            channel=record.channel,
        )
