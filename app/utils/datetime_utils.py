import re
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from app.config.settings import settings

BUSINESS_TZ = ZoneInfo(settings.TIMEZONE)

# Appointment time used when a day carries no (or an unreadable) time
DEFAULT_APPOINTMENT_TIME = time(10, 0)

_TIME_PATTERN = re.compile(
    r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$"
)


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    All DateTime columns store naive UTC.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Args:
        dt: Datetime object to convert, naive values are read as UTC

    Returns:
        datetime: UTC timezone-aware datetime
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to naive UTC (no timezone info) for storage.

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: Naive UTC datetime
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def from_naive_utc(dt: datetime, zone: ZoneInfo = ZoneInfo("UTC")) -> datetime:
    """
    Convert a naive UTC datetime read from the database to an aware datetime.

    Args:
        dt: Naive UTC datetime to convert
        zone: Timezone to use for the conversion (default: UTC)

    Returns:
        datetime: Timezone-aware datetime
    """
    if dt.tzinfo is not None:
        raise ValueError("Input datetime must be naive (no timezone info)")
    return dt.replace(tzinfo=timezone.utc).astimezone(zone)


def to_business_tz(dt: datetime) -> datetime:
    """Express an instant in the business timezone. Naive values are read as UTC."""
    return to_utc(dt).astimezone(BUSINESS_TZ)


class Clock(ABC):
    """Source of "now" for scheduling and sweeping."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware"""


class SystemClock(Clock):
    def now(self) -> datetime:
        return utc_now()


def parse_event_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a booking day date string into a calendar date.

    Accepts ISO dates ("2026-10-19"), ISO datetimes and the long form shown to
    customers ("October 19th, 2026"). The result is a plain date; callers anchor
    it to local midnight with `local_midnight`.

    Raises:
        ValueError: when the string cannot be read as a date
    """
    if not value or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        # Ordinal suffixes ("19th") are skipped by the fuzzy parser
        return date_parser.parse(text, fuzzy=True).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Unparseable event date: {value!r}") from e


def parse_appointment_time(value: Optional[str]) -> time:
    """Read "14:00", "14:00:00" or "2:00 PM"; anything else falls back to 10:00."""
    if not value:
        return DEFAULT_APPOINTMENT_TIME
    match = _TIME_PATTERN.match(value)
    if not match:
        return DEFAULT_APPOINTMENT_TIME

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").upper()
    if meridiem:
        if not 1 <= hours <= 12:
            return DEFAULT_APPOINTMENT_TIME
        if meridiem == "PM" and hours != 12:
            hours += 12
        elif meridiem == "AM" and hours == 12:
            hours = 0
    if hours > 23 or minutes > 59 or seconds > 59:
        return DEFAULT_APPOINTMENT_TIME
    return time(hours, minutes, seconds)


def local_midnight(day: date) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=BUSINESS_TZ)


def combine_local(day: date, at: time) -> datetime:
    """Wall-clock time on a calendar day in the business timezone."""
    return datetime.combine(day, at, tzinfo=BUSINESS_TZ)


def add_civil_days(dt: datetime, days: int) -> datetime:
    """
    Shift by calendar days in the business timezone, keeping the wall-clock
    time across DST changes.
    """
    local = to_business_tz(dt)
    shifted = local.replace(tzinfo=None) + relativedelta(days=days)
    return shifted.replace(tzinfo=BUSINESS_TZ)


def add_elapsed(dt: datetime, delta: timedelta) -> datetime:
    """Shift by elapsed time; the result is in the business timezone."""
    return to_business_tz(to_utc(dt) + delta)


def format_event_date(day: date) -> str:
    """Long date used in customer messages, e.g. "October 19th, 2026"."""
    if 11 <= day.day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day.day % 10, "th")
    return f"{day.strftime('%B')} {day.day}{suffix}, {day.year}"
