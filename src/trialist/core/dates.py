"""Date and timezone helpers.

Trial windows are compared as UTC calendar dates, while per-response
timestamps are rendered in the timezone the phone reported.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def parse_timezone(tz_name: Optional[str]) -> Optional[ZoneInfo]:
    """Resolve an IANA timezone identifier, returning None when it is unknown."""
    if not tz_name or not str(tz_name).strip():
        return None
    try:
        return ZoneInfo(str(tz_name).strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def parse_local_datetime(value: Optional[str], tz: ZoneInfo) -> Optional[datetime]:
    """Parse an ISO date or date-time, attaching ``tz`` when no offset is present."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def to_utc_date(dt: datetime) -> date:
    """Convert an aware datetime to UTC and drop the time of day."""
    return dt.astimezone(timezone.utc).date()


def epoch_millis_to_utc_date(epoch_millis: int) -> date:
    return datetime.fromtimestamp(epoch_millis / 1000, tz=timezone.utc).date()


def format_timestamp(epoch_millis: int, tz: ZoneInfo) -> str:
    """ISO 8601 timestamp with milliseconds and the offset of ``tz``; a zero offset is written as ``Z``."""
    dt = datetime.fromtimestamp(epoch_millis / 1000, tz=timezone.utc).astimezone(tz)
    text = dt.isoformat(timespec="milliseconds")
    if dt.utcoffset() == timedelta(0):
        return text[: -len("+00:00")] + "Z"
    return text


def days_between(start: date, end: date) -> int:
    return (end - start).days
