from unittest.mock import patch

import pytest

from app.config.settings import settings
from app.db.models import BookingStatus, NotificationKind, PaymentStatus
from app.schemas.booking_schemas import BookingDayRequest, CreateBookingRequest
from app.services.booking_service import BookingService
from app.services.notifications.scheduler import NotificationScheduler
from app.services.notifications.store import NotificationRecordStore
from app.utils.errors import DatabaseError


def booking_request(**overrides) -> CreateBookingRequest:
    data = {
        "customer_name": "Ana Lima",
        "customer_email": "ana@lima-events.com",
        "customer_phone": "416-555-0134",
        "days": [BookingDayRequest(event_date="2026-11-20", appointment_time="2:00 PM")],
    }
    data.update(overrides)
    return CreateBookingRequest(**data)


def kinds(db_session, booking_id, cancelled=None):
    records = NotificationRecordStore(db_session).list_for_booking(booking_id)
    return {
        r.kind
        for r in records
        if cancelled is None or r.cancelled == cancelled
    }


class TestBookingMutations:
    """Test booking writes followed by notification scheduling."""

    @pytest.mark.asyncio
    async def test_create_booking_schedules_notifications(self, db_session, clock):
        """Test a new quote is stored with its reminders."""
        service = BookingService(db_session, clock=clock)

        booking = await service.create_booking(booking_request())

        assert booking.status == BookingStatus.QUOTED
        assert booking.days[0].appointment_time == "2:00 PM"
        pending = kinds(db_session, booking.id, cancelled=False)
        assert NotificationKind.INITIAL in pending
        assert NotificationKind.URGENCY_2W in pending

    @pytest.mark.asyncio
    async def test_confirm_and_pay_flow(self, db_session, clock):
        """Test confirming and paying swaps chasers for event reminders."""
        service = BookingService(db_session, clock=clock)
        booking = await service.create_booking(booking_request())

        await service.update_advance_payment_status(booking.id, PaymentStatus.APPROVED)
        await service.update_status(booking.id, BookingStatus.CONFIRMED)

        cancelled = kinds(db_session, booking.id, cancelled=True)
        pending = kinds(db_session, booking.id, cancelled=False)
        assert NotificationKind.FOLLOWUP_3H in cancelled
        assert NotificationKind.APPOINTMENT_DAY_REMINDER in pending
        assert NotificationKind.POST_APPOINTMENT_FOLLOWUP in pending

    @pytest.mark.asyncio
    async def test_reinstating_cancelled_booking_brings_chasers_back(self, db_session, clock):
        """Test leaving the cancelled status runs a reschedule."""
        service = BookingService(db_session, clock=clock)
        booking = await service.create_booking(booking_request())

        await service.update_status(booking.id, BookingStatus.CANCELLED)
        assert NotificationKind.FOLLOWUP_6D in kinds(db_session, booking.id, cancelled=True)

        await service.update_status(booking.id, BookingStatus.QUOTED)
        assert NotificationKind.FOLLOWUP_6D in kinds(db_session, booking.id, cancelled=False)

    @pytest.mark.asyncio
    async def test_update_days_replaces_service_days(self, db_session, clock):
        """Test new days replace the old ones in order."""
        service = BookingService(db_session, clock=clock)
        booking = await service.create_booking(booking_request())

        updated = await service.update_days(
            booking.id,
            [
                BookingDayRequest(event_date="2026-12-04", appointment_time="09:00"),
                BookingDayRequest(event_date="2026-12-05", appointment_time="09:00"),
            ],
        )

        assert [day.event_date for day in updated.days] == ["2026-12-04", "2026-12-05"]
        assert [day.position for day in updated.days] == [0, 1]

    @pytest.mark.asyncio
    async def test_missing_booking(self, db_session, clock):
        """Test unknown bookings raise the not-found code."""
        service = BookingService(db_session, clock=clock)
        with pytest.raises(ValueError, match="BOOKING_NOT_FOUND"):
            await service.update_status("missing", BookingStatus.CONFIRMED)


class TestBestEffortScheduling:
    """Test scheduling never blocks the booking write."""

    @pytest.mark.asyncio
    async def test_scheduling_failure_is_swallowed(self, db_session, clock):
        """Test the booking is saved when the store fails during scheduling."""
        service = BookingService(db_session, clock=clock)
        with patch.object(
            NotificationScheduler,
            "ensure_scheduled",
            side_effect=DatabaseError("Failed to insert scheduled notification"),
        ):
            booking = await service.create_booking(booking_request())

        assert (await service.get_booking(booking.id)).customer_name == "Ana Lima"
        assert kinds(db_session, booking.id) == set()

    @pytest.mark.asyncio
    async def test_task_mode_hands_off_to_celery(self, db_session, clock, monkeypatch):
        """Test scheduling is queued instead of run inline in task mode."""
        monkeypatch.setattr(settings, "NOTIFICATION_SCHEDULING_MODE", "task")
        service = BookingService(db_session, clock=clock)

        with patch("app.tasks.ensure_booking_notifications_task") as task:
            booking = await service.create_booking(booking_request())

        task.delay.assert_called_once()
        assert task.delay.call_args.kwargs["booking_id"] == booking.id
        assert task.delay.call_args.kwargs["reinstate"] is False
        assert kinds(db_session, booking.id) == set()

    @pytest.mark.asyncio
    async def test_immediate_dispatch_of_same_day_reminder(self, db_session, clock, notifier, monkeypatch):
        """Test a same-day reminder due within the window goes out right away."""
        monkeypatch.setattr(settings, "IMMEDIATE_DISPATCH_ENABLED", True)
        service = BookingService(db_session, clock=clock, notifier=notifier)

        # Appointment at 12:32 puts the reminder at 10:02, two minutes from now
        booking = await service.create_booking(
            booking_request(
                status=BookingStatus.CONFIRMED,
                advance_payment_status=PaymentStatus.APPROVED,
                days=[BookingDayRequest(event_date="2026-10-19", appointment_time="12:32")],
            )
        )

        assert notifier.kinds() == [NotificationKind.APPOINTMENT_DAY_REMINDER]
        record = NotificationRecordStore(db_session).get(
            booking.id, NotificationKind.APPOINTMENT_DAY_REMINDER
        )
        assert record.sent
