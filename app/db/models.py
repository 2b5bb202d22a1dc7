from typing import List, Optional
from datetime import datetime
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Text,
    ForeignKey,
    Enum,
    Index,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum
import uuid

from app.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


def generate_id() -> str:
    return str(uuid.uuid4())


def enum_column(enum_cls):
    """Enum type persisted by value ("followup-3h") instead of by member name."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
    )


# Enums
class BookingStatus(enum.Enum):
    QUOTED = "quoted"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    APPROVED = "approved"
    REJECTED = "rejected"


class ChannelType(enum.Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class NotificationKind(enum.Enum):
    INITIAL = "initial"
    FOLLOWUP_3H = "followup-3h"
    FOLLOWUP_6H = "followup-6h"
    FOLLOWUP_24H = "followup-24h"
    FOLLOWUP_3D = "followup-3d"
    FOLLOWUP_6D = "followup-6d"
    FOLLOWUP_30D = "followup-30d"
    URGENCY_7D = "urgency-7d"
    URGENCY_2W = "urgency-2w"
    URGENCY_1W = "urgency-1w"
    EVENT_REMINDER_24H = "event-reminder-24h"
    APPOINTMENT_DAY_REMINDER = "appointment-day-reminder"
    POST_APPOINTMENT_FOLLOWUP = "post-appointment-followup"


class NotificationEventStatus(enum.Enum):
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    PROCESSING = "processing"
    SENT = "sent"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    FAILED = "failed"
    DELIVERED = "delivered"
    RETRIED = "retried"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields, stored as naive UTC"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, onupdate=naive_utc_now
    )


# Models
class Booking(Base, AuditMixin):
    """
    A customer booking. The notification engine only reads it; status and
    payment fields are written by the booking service.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(320))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[BookingStatus] = mapped_column(
        enum_column(BookingStatus), default=BookingStatus.QUOTED, nullable=False
    )
    advance_payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    final_payment_status: Mapped[Optional[PaymentStatus]] = mapped_column(
        enum_column(PaymentStatus)
    )

    # Relationships
    days: Mapped[List["BookingDay"]] = relationship(
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingDay.position",
        lazy="selectin",
    )
    scheduled_notifications: Mapped[List["ScheduledNotification"]] = relationship(
        back_populates="booking"
    )

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_created_at", "created_at"),
    )


class BookingDay(Base, AuditMixin):
    __tablename__ = "booking_days"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    booking_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Kept as entered: "2026-10-19" or "October 19th, 2026"
    event_date: Mapped[Optional[str]] = mapped_column(String(50))
    # "14:00", "14:00:00" or "2:00 PM"
    appointment_time: Mapped[Optional[str]] = mapped_column(String(20))

    # Relationships
    booking: Mapped["Booking"] = relationship(back_populates="days")

    __table_args__ = (
        UniqueConstraint("booking_id", "position", name="uq_booking_days_position"),
        Index("idx_booking_days_booking_id", "booking_id"),
    )


class ScheduledNotification(Base, AuditMixin):
    """One row per (booking, kind). Rows are cancelled or sent, never deleted."""

    __tablename__ = "scheduled_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    booking_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bookings.id", ondelete="NO ACTION"), nullable=False
    )
    kind: Mapped[NotificationKind] = mapped_column(
        enum_column(NotificationKind), nullable=False
    )
    channel: Mapped[ChannelType] = mapped_column(
        enum_column(ChannelType), nullable=False
    )
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255))
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    # Delivery fields, updated by the provider status callback
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(100))
    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivery_status: Mapped[Optional[str]] = mapped_column(String(30))

    # Dispatch bookkeeping
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    booking: Mapped["Booking"] = relationship(back_populates="scheduled_notifications")

    __table_args__ = (
        UniqueConstraint("booking_id", "kind", name="uq_sched_notif_booking_kind"),
        CheckConstraint("attempts >= 0", name="ck_sched_notif_attempts_positive"),
        Index("idx_sched_notif_due", "sent", "cancelled", "scheduled_for"),
        Index("idx_sched_notif_booking_id", "booking_id"),
        Index("idx_sched_notif_provider_message_id", "provider_message_id"),
    )


class NotificationEvent(Base):
    """Append-only log of every scheduling and dispatch step."""

    __tablename__ = "notification_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    booking_id: Mapped[str] = mapped_column(String(36), nullable=False)
    notification_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("scheduled_notifications.id", ondelete="NO ACTION")
    )
    kind: Mapped[NotificationKind] = mapped_column(
        enum_column(NotificationKind), nullable=False
    )
    channel: Mapped[Optional[ChannelType]] = mapped_column(enum_column(ChannelType))
    status: Mapped[NotificationEventStatus] = mapped_column(
        enum_column(NotificationEventStatus), nullable=False
    )
    detail: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (
        Index("idx_notif_events_booking_kind_created", "booking_id", "kind", "created_at"),
        Index("idx_notif_events_status", "status"),
    )
