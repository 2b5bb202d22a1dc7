from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Cap on error messages carried back from one sweep
MAX_SWEEP_ERRORS = 10


class BookingAnchors(BaseModel):
    """Instants a booking's notifications are scheduled relative to."""

    model_config = ConfigDict(frozen=True)

    created_at: datetime
    event_date: Optional[date] = None
    appointment_time: time


class ScheduleDecision(BaseModel):
    """
    Outcome of the calculator for one kind. A decision with a cancel reason is
    still persisted, as an already-cancelled record.
    """

    model_config = ConfigDict(frozen=True)

    scheduled_for: datetime
    cancel_reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_reason is not None


class DeliveryOutcome(BaseModel):
    success: bool
    provider_message_id: Optional[str] = None
    delivered: bool = False
    delivery_status: Optional[str] = None
    error_message: Optional[str] = None


class ScheduleResult(BaseModel):
    booking_id: str
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    cancelled: List[str] = Field(default_factory=list)
    rescheduled: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)
    # Record ids of same-day reminders that are due right away
    due_now: List[str] = Field(default_factory=list)


class SweepResult(BaseModel):
    total_due: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    already_claimed: int = 0
    errors: List[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_SWEEP_ERRORS:
            self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
