from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class ScheduledNotificationResponse(BaseModel):
    """One scheduled notification record with its admin badge"""

    id: str = Field(..., description="Record ID")
    booking_id: str
    kind: str = Field(..., description='Notification kind, e.g. "followup-3h"')
    channel: str = Field(..., description="email or whatsapp")
    display_status: str = Field(
        ..., description="Not Scheduled, Scheduled, Sent or Cancelled"
    )
    scheduled_for: datetime = Field(..., description="Fire time (UTC)")
    sent: bool
    sent_at: Optional[datetime] = None
    cancelled: bool
    cancel_reason: Optional[str] = None
    last_error: Optional[str] = None
    provider_message_id: Optional[str] = None
    delivered: bool
    delivery_status: Optional[str] = None
    attempts: int


class BookingNotificationStatusResponse(BaseModel):
    booking_id: str
    statuses: Dict[str, str] = Field(
        ..., description="Admin badge per notification kind"
    )
    notifications: List[ScheduledNotificationResponse]


class SweepResponse(BaseModel):
    total_due: int
    sent: int
    skipped: int
    failed: int
    already_claimed: int
    errors: List[str] = Field(default_factory=list)


class ScheduleResultResponse(BaseModel):
    booking_id: str
    created: List[str]
    updated: List[str]
    cancelled: List[str]
    rescheduled: List[str]
    unchanged: List[str]
    due_now: List[str]


class NotificationEventResponse(BaseModel):
    """One entry of the append-only notification event log"""

    id: str
    booking_id: str
    notification_id: Optional[str] = None
    kind: str
    channel: Optional[str] = None
    status: str
    detail: Optional[str] = None
    created_at: datetime
