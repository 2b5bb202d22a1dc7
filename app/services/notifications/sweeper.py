import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import ScheduledNotification
from app.db.session import get_sync_session
from app.models.notification_models import SweepResult
from app.providers.notifier import Notifier, get_default_notifier
from app.services.booking_store import BookingStore
from app.services.notifications.cancellation_policy import CancellationPolicy
from app.services.notifications.delivery_tracker import DeliveryTracker
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.notifications.store import NotificationRecordStore
from app.utils.datetime_utils import Clock, SystemClock
from app.utils.errors import DatabaseError
from app.utils.logging import get_logger

logger = get_logger()

BOOKING_NOT_FOUND = "booking not found"


class DueSweeper:
    """
    Finds due records and dispatches each one at most once.

    Every record is claimed with a conditional update before anything is
    sent, so overlapping sweeps (or an immediate dispatch racing a sweep)
    never send the same record twice.
    """

    def __init__(
        self,
        db_session: Session,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        max_attempts: Optional[int] = None,
        claim_timeout: Optional[timedelta] = None,
        send_timeout_seconds: Optional[float] = None,
    ):
        self.store = NotificationRecordStore(db_session)
        self.booking_store = BookingStore(db_session)
        self.tracker = DeliveryTracker(db_session)
        self.dispatcher = NotificationDispatcher(
            db_session, notifier, timeout_seconds=send_timeout_seconds
        )
        self.clock = clock or SystemClock()
        self.batch_size = batch_size or settings.NOTIFICATION_SWEEP_BATCH_SIZE
        self.concurrency = concurrency or settings.NOTIFICATION_SWEEP_CONCURRENCY
        self.max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS
        self.claim_timeout = claim_timeout or timedelta(
            minutes=settings.NOTIFICATION_CLAIM_TIMEOUT_MINUTES
        )

    def _stale_before(self, now: datetime) -> datetime:
        return now - self.claim_timeout

    async def run_sweep(self) -> SweepResult:
        """Dispatch every record due now. Safe to call more often than scheduled."""
        now = self.clock.now()
        due_ids = self.store.find_due(
            now=now,
            limit=self.batch_size,
            max_attempts=self.max_attempts,
            stale_before=self._stale_before(now),
        )
        if not due_ids:
            logger.info("No due notifications")
            return SweepResult()

        logger.info(f"Found {len(due_ids)} due notifications")
        return await self.dispatch_records(due_ids)

    async def dispatch_records(self, record_ids: List[str]) -> SweepResult:
        """Claim and dispatch specific records with bounded concurrency"""
        result = SweepResult(total_due=len(record_ids))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(record_id: str) -> None:
            async with semaphore:
                await self._process_record(record_id, result)

        await asyncio.gather(*(guarded(record_id) for record_id in record_ids))

        logger.info(
            f"Sweep finished: {result.sent} sent, {result.skipped} skipped, "
            f"{result.failed} failed, {result.already_claimed} already claimed"
        )
        return result

    async def _process_record(self, record_id: str, result: SweepResult) -> None:
        record = None
        try:
            now = self.clock.now()
            if not self.store.claim(
                record_id,
                now=now,
                max_attempts=self.max_attempts,
                stale_before=self._stale_before(now),
            ):
                result.already_claimed += 1
                return

            record = self.store.get_by_id(record_id)
            self.tracker.record_processing(record)

            # Final authoritative check against the booking as it is now
            booking = self.booking_store.get(record.booking_id)
            if booking is None:
                self.tracker.record_skipped(record, BOOKING_NOT_FOUND)
                result.skipped += 1
                return

            reason = CancellationPolicy.suppression_reason(record.kind, booking)
            if reason:
                self.tracker.record_skipped(record, reason)
                result.skipped += 1
                return

            outcome = await self.dispatcher.dispatch(record, booking, self.clock.now())
            if outcome.success:
                result.sent += 1
            else:
                result.failed += 1
                result.add_error(f"{record.kind.value} {record_id}: {outcome.error_message}")

        except Exception as e:
            # One record never aborts the batch
            logger.opt(exception=e).error(f"Error processing notification {record_id}: {str(e)}")
            result.failed += 1
            result.add_error(f"{record_id}: {str(e)}")
            if record is not None:
                self._release(record, str(e))

    def _release(self, record: ScheduledNotification, error_message: str) -> None:
        """Write the failure on a claimed record so it never stays silently in flight"""
        try:
            self.tracker.record_failure(record, error_message)
        except DatabaseError as e:
            # Stale-claim takeover is the fallback once the store is back
            logger.error(f"Could not release claim on {record.id}: {e.message}")


def get_due_sweeper(db: Session = Depends(get_sync_session)) -> DueSweeper:
    """Dependency to provide a DueSweeper wired to the configured providers"""
    return DueSweeper(db, get_default_notifier())
