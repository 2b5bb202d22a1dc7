from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.db.models import Booking
from app.models.booking_models import BookingSnapshot


class BookingStore:
    """Read access to bookings for the notification engine, always fresh from the database"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_model(self, booking_id: str) -> Optional[Booking]:
        return self.db.execute(
            select(Booking)
            .options(selectinload(Booking.days))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get(self, booking_id: str) -> Optional[BookingSnapshot]:
        booking = self.get_model(booking_id)
        return BookingSnapshot.from_model(booking) if booking else None
