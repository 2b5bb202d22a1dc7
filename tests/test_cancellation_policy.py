from app.db.models import BookingStatus, NotificationKind, PaymentStatus
from app.services.notifications.cancellation_policy import CancellationPolicy
from app.services.notifications.registry import NotificationRuleRegistry
from tests.factories import make_snapshot

EVENT_KINDS = [
    NotificationKind.EVENT_REMINDER_24H,
    NotificationKind.APPOINTMENT_DAY_REMINDER,
    NotificationKind.POST_APPOINTMENT_FOLLOWUP,
]
QUOTE_CHASERS = NotificationRuleRegistry.creation_relative_kinds() + [
    NotificationKind.URGENCY_2W,
    NotificationKind.URGENCY_1W,
]


class TestQuoteChasers:
    """Test suppression of the quote follow-ups."""

    def test_quoted_unpaid_booking_is_chased(self):
        """Test nothing is suppressed for an open quote."""
        booking = make_snapshot()
        for kind in QUOTE_CHASERS:
            assert CancellationPolicy.suppression_reason(kind, booking) is None

    def test_confirmed_or_paid_or_cancelled_stops_chasers(self):
        """Test each state that ends the chase has its own reason."""
        cases = [
            (make_snapshot(status=BookingStatus.CONFIRMED), "booking confirmed"),
            (make_snapshot(status=BookingStatus.CANCELLED), "booking cancelled"),
            (
                make_snapshot(advance_payment_status=PaymentStatus.PAID),
                "advance payment received",
            ),
            (
                make_snapshot(advance_payment_status=PaymentStatus.APPROVED),
                "advance payment received",
            ),
        ]
        for booking, reason in cases:
            for kind in QUOTE_CHASERS:
                assert CancellationPolicy.suppression_reason(kind, booking) == reason

    def test_rejected_payment_does_not_count(self):
        """Test a rejected advance payment keeps the chase going."""
        booking = make_snapshot(advance_payment_status=PaymentStatus.REJECTED)
        assert not CancellationPolicy.should_suppress(NotificationKind.FOLLOWUP_3H, booking)


class TestEventReminders:
    """Test suppression of the event and appointment reminders."""

    def test_confirmed_and_paid_booking_gets_reminders(self):
        """Test event kinds apply once confirmed with advance payment."""
        booking = make_snapshot(
            status=BookingStatus.CONFIRMED,
            advance_payment_status=PaymentStatus.APPROVED,
        )
        for kind in EVENT_KINDS:
            assert CancellationPolicy.suppression_reason(kind, booking) is None

    def test_event_reminders_need_confirmation_and_payment(self):
        """Test each missing condition has its own reason."""
        cases = [
            (make_snapshot(), "booking not confirmed"),
            (make_snapshot(status=BookingStatus.CONFIRMED), "advance payment not received"),
            (
                make_snapshot(
                    status=BookingStatus.CANCELLED,
                    advance_payment_status=PaymentStatus.PAID,
                ),
                "booking cancelled",
            ),
        ]
        for booking, reason in cases:
            for kind in EVENT_KINDS:
                assert CancellationPolicy.suppression_reason(kind, booking) == reason


class TestInitial:
    """Test the quote announcement rules."""

    def test_initial_never_suppressed(self):
        """Test the initial email is not cancelled by later state changes."""
        booking = make_snapshot(status=BookingStatus.CONFIRMED)
        assert CancellationPolicy.suppression_reason(NotificationKind.INITIAL, booking) is None

    def test_initial_not_created_for_cancelled_booking(self):
        """Test a booking created as cancelled gets no announcement."""
        assert CancellationPolicy.should_create_initial(make_snapshot())
        assert not CancellationPolicy.should_create_initial(
            make_snapshot(status=BookingStatus.CANCELLED)
        )
