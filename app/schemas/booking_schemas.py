from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field

from app.db.models import BookingStatus, PaymentStatus
from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class BookingDayRequest(BaseModel):
    """One service day; the first day is the event"""

    event_date: Optional[str] = Field(
        None,
        max_length=50,
        description='Event date, "2026-10-19" or "October 19th, 2026"',
    )
    appointment_time: Optional[str] = Field(
        None, max_length=20, description='Appointment time, "14:00" or "2:00 PM"'
    )


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking"""

    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[EmailStr] = Field(None, description="Email destination")
    customer_phone: Optional[str] = Field(
        None, max_length=32, description="WhatsApp destination"
    )
    status: BookingStatus = Field(default=BookingStatus.QUOTED)
    advance_payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    days: List[BookingDayRequest] = Field(default_factory=list)


class UpdateBookingStatusRequest(BaseModel):
    status: BookingStatus = Field(..., description="New booking status")


class UpdatePaymentStatusRequest(BaseModel):
    status: PaymentStatus = Field(..., description="New payment status")


class UpdateBookingDaysRequest(BaseModel):
    days: List[BookingDayRequest] = Field(..., description="Replacement service days")


class BookingDayResponse(BaseModel):
    position: int
    event_date: Optional[str] = None
    appointment_time: Optional[str] = None


class BookingResponse(BaseModel):
    """Response schema for booking data"""

    id: str = Field(..., description="Booking ID")
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    status: BookingStatus
    advance_payment_status: PaymentStatus
    final_payment_status: Optional[PaymentStatus] = None
    days: List[BookingDayResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None
