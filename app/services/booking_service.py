from typing import List, Optional

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import Booking, BookingDay, BookingStatus, PaymentStatus
from app.db.session import get_sync_session
from app.models.booking_models import BookingSnapshot
from app.models.notification_models import ScheduleResult
from app.providers.notifier import Notifier, get_default_notifier
from app.schemas.booking_schemas import (
    BookingDayRequest,
    BookingResponse,
    CreateBookingRequest,
)
from app.services.booking_store import BookingStore
from app.services.notifications.scheduler import NotificationScheduler
from app.services.notifications.sweeper import DueSweeper
from app.utils.context import get_request_id
from app.utils.datetime_utils import Clock, SystemClock, to_naive_utc, to_utc
from app.utils.logging import get_logger

logger = get_logger()


class BookingService:
    """
    Booking mutations. Each one commits the booking first and then runs
    notification scheduling best-effort, so a scheduling failure never blocks
    the booking write.
    """

    def __init__(
        self,
        db_session: Session,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db_session
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.booking_store = BookingStore(db_session)

    # Reads
    async def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_store.get_model(booking_id)
        if not booking:
            raise ValueError("BOOKING_NOT_FOUND")
        return booking

    # Mutations
    async def create_booking(self, booking_data: CreateBookingRequest) -> Booking:
        booking = Booking(
            customer_name=booking_data.customer_name,
            customer_email=booking_data.customer_email,
            customer_phone=booking_data.customer_phone,
            status=booking_data.status,
            advance_payment_status=booking_data.advance_payment_status,
            days=self._build_days(booking_data.days),
            created_at=to_naive_utc(self.clock.now()),
        )
        self._save(booking, "create booking")
        logger.info(f"Created booking {booking.id} with status {booking.status.value}")

        await self.schedule_notifications(booking.id)
        return booking

    async def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        booking = await self.get_booking(booking_id)
        previous = booking.status
        booking.status = status
        self._save(booking, "update booking status")
        logger.info(
            f"Booking {booking_id} status {previous.value} -> {status.value}"
        )

        # A cancelled booking brought back gets its suppressed reminders again
        reinstate = previous == BookingStatus.CANCELLED and status != previous
        await self.schedule_notifications(booking_id, reinstate=reinstate)
        return booking

    async def update_advance_payment_status(
        self, booking_id: str, status: PaymentStatus
    ) -> Booking:
        booking = await self.get_booking(booking_id)
        booking.advance_payment_status = status
        self._save(booking, "update advance payment status")
        logger.info(f"Booking {booking_id} advance payment is now {status.value}")

        await self.schedule_notifications(booking_id)
        return booking

    async def update_final_payment_status(
        self, booking_id: str, status: PaymentStatus
    ) -> Booking:
        booking = await self.get_booking(booking_id)
        booking.final_payment_status = status
        self._save(booking, "update final payment status")
        logger.info(f"Booking {booking_id} final payment is now {status.value}")

        await self.schedule_notifications(booking_id)
        return booking

    async def update_days(
        self, booking_id: str, days: List[BookingDayRequest]
    ) -> Booking:
        """Replace the service days; event-anchored reminders move with them"""
        booking = await self.get_booking(booking_id)
        try:
            # Old rows go first so positions can be reused
            booking.days.clear()
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update booking days: {str(e)}")
            raise
        booking.days.extend(self._build_days(days))
        self._save(booking, "update booking days")
        logger.info(f"Booking {booking_id} now has {len(days)} service days")

        await self.schedule_notifications(booking_id)
        return booking

    @staticmethod
    def _build_days(days: List[BookingDayRequest]) -> List[BookingDay]:
        return [
            BookingDay(
                position=position,
                event_date=day.event_date,
                appointment_time=day.appointment_time,
            )
            for position, day in enumerate(days)
        ]

    def _save(self, booking: Booking, action: str) -> None:
        try:
            self.db.add(booking)
            self.db.commit()
            self.db.refresh(booking)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise

    # Notification scheduling
    async def schedule_notifications(
        self, booking_id: str, reinstate: bool = False
    ) -> Optional[ScheduleResult]:
        """Best-effort: failures are logged, never raised to the caller"""
        try:
            if settings.NOTIFICATION_SCHEDULING_MODE == "task":
                from app.tasks import ensure_booking_notifications_task

                ensure_booking_notifications_task.delay(  # type: ignore
                    request_id=get_request_id() or booking_id,
                    booking_id=booking_id,
                    reinstate=reinstate,
                )
                return None

            return await self.run_scheduling(booking_id, reinstate=reinstate)

        except Exception as e:
            logger.error(
                f"Notification scheduling failed for booking {booking_id}: {str(e)}"
            )
            return None

    async def run_scheduling(
        self, booking_id: str, reinstate: bool = False
    ) -> Optional[ScheduleResult]:
        """Schedule inline; raises DatabaseError when the store is unavailable"""
        snapshot = self.booking_store.get(booking_id)
        if snapshot is None:
            logger.warning(f"Booking {booking_id} not found, nothing to schedule")
            return None

        scheduler = NotificationScheduler(self.db, clock=self.clock)
        result = (
            scheduler.reschedule(snapshot)
            if reinstate
            else scheduler.ensure_scheduled(snapshot)
        )

        if settings.IMMEDIATE_DISPATCH_ENABLED and result.due_now:
            sweeper = DueSweeper(
                self.db, self.notifier or get_default_notifier(), clock=self.clock
            )
            await sweeper.dispatch_records(result.due_now)
        return result

    @staticmethod
    def to_response(booking: Booking) -> BookingResponse:
        snapshot = BookingSnapshot.from_model(booking)
        return BookingResponse(
            id=booking.id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
            status=booking.status,
            advance_payment_status=booking.advance_payment_status,
            final_payment_status=booking.final_payment_status,
            days=[
                {
                    "position": position,
                    "event_date": day.event_date,
                    "appointment_time": day.appointment_time,
                }
                for position, day in enumerate(snapshot.days)
            ],
            created_at=to_utc(booking.created_at),
            updated_at=to_utc(booking.updated_at) if booking.updated_at else None,
        )


def get_booking_service(
    db: Session = Depends(get_sync_session),
) -> BookingService:
    """Dependency to provide BookingService instance"""
    return BookingService(db)
