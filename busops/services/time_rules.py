"""
Time helpers.
Handles UTC normalisation, local-day bucketing and HH:MM work-time entry.
"""
from datetime import datetime, timezone
from typing import Optional, Tuple
import pytz

from ..errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes read back from the store.

    SQLite drops tzinfo, so every datetime is written as UTC and re-tagged here.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def local_to_utc(local_datetime: datetime, timezone_str: str) -> datetime:
    """
    Convert local datetime to UTC.

    Args:
        local_datetime: Local datetime (naive means wall-clock time in timezone_str)
        timezone_str: Timezone string (e.g., "Europe/Paris")

    Returns:
        UTC datetime (timezone-aware)
    """
    tz = pytz.timezone(timezone_str)
    if local_datetime.tzinfo is None:
        local_dt = tz.localize(local_datetime)
    else:
        local_dt = local_datetime.astimezone(tz)
    return local_dt.astimezone(pytz.UTC)


def utc_to_local(utc_datetime: datetime, timezone_str: str) -> datetime:
    """
    Convert UTC datetime to local timezone.

    Args:
        utc_datetime: UTC datetime (naive values are read as UTC)
        timezone_str: Timezone string (e.g., "Europe/Paris")

    Returns:
        Local datetime (timezone-aware)
    """
    tz = pytz.timezone(timezone_str)
    return ensure_utc(utc_datetime).astimezone(tz)


def local_day(dt: datetime, timezone_str: str) -> Tuple[int, int, int]:
    """(year, month, day) of a stored UTC datetime in the given timezone."""
    local = utc_to_local(dt, timezone_str)
    return local.year, local.month, local.day


def parse_hhmm(value: str) -> int:
    """
    Parse an "HH:MM" work-time entry into minutes.

    Hours must be 0..23 and minutes 0..59; an empty string means 0.
    """
    value = (value or "").strip()
    if not value:
        return 0
    parts = value.split(":")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        raise ValidationError(f"Invalid time '{value}' (expected HH:MM, max 23:59)")
    h, m = int(parts[0]), int(parts[1])
    if h < 0 or h > 23 or m < 0 or m > 59:
        raise ValidationError(f"Invalid time '{value}' (expected HH:MM, max 23:59)")
    return h * 60 + m


def format_minutes(minutes: Optional[int]) -> str:
    if not minutes:
        return "00:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
