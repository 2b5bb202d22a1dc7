from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from app.db.models import Booking, BookingStatus, PaymentStatus
from app.utils.datetime_utils import to_utc


class BookingDaySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_date: Optional[str] = None
    appointment_time: Optional[str] = None


class BookingSnapshot(BaseModel):
    """
    Read-only view of a booking taken at evaluation time. Eligibility is
    derived from it on every pass and never cached.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    status: BookingStatus
    advance_payment_status: PaymentStatus
    final_payment_status: Optional[PaymentStatus] = None
    days: Tuple[BookingDaySnapshot, ...] = ()
    created_at: datetime
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None

    @property
    def first_day(self) -> Optional[BookingDaySnapshot]:
        """The first service day is the canonical event."""
        return self.days[0] if self.days else None

    @property
    def has_advance_payment(self) -> bool:
        return self.advance_payment_status in (
            PaymentStatus.PAID,
            PaymentStatus.APPROVED,
        )

    @classmethod
    def from_model(cls, booking: Booking) -> "BookingSnapshot":
        return cls(
            id=booking.id,
            status=booking.status,
            advance_payment_status=booking.advance_payment_status,
            final_payment_status=booking.final_payment_status,
            days=tuple(
                BookingDaySnapshot(
                    event_date=day.event_date, appointment_time=day.appointment_time
                )
                for day in sorted(booking.days, key=lambda d: d.position)
            ),
            created_at=to_utc(booking.created_at),
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
        )
