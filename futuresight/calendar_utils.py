"""Utility functions for calendar date and time handling."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO 8601 / RFC3339 timestamp (handles +HH:MM, -HH:MM and Z).

    Raises:
        ValueError: If the string is not a date-time
    """
    if "T" not in value:
        raise ValueError(f"Not an ISO 8601 date-time: {value!r}")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_timezone(name: str | None) -> str:
    """Return name if it is a known IANA timezone, otherwise 'UTC'."""
    if not name:
        return "UTC"
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"
    return name


def is_all_day(value: date | datetime | None) -> bool:
    """Check if a calendar value is a bare date (all-day)."""
    return isinstance(value, date) and not isinstance(value, datetime)


def format_calendar_time(value: date | datetime | None) -> str:
    """Format a date or datetime as an ISO 8601 string."""
    if value is None:
        return ""
    return value.isoformat()


def get_duration_minutes(
    start: date | datetime | None, end: date | datetime | None
) -> int | None:
    """Calculate the duration between two calendar values in minutes."""
    if start is None or end is None:
        return None
    if is_all_day(start) != is_all_day(end):
        return None

    try:
        if is_all_day(start):
            delta = end - start
            return int(delta.total_seconds() / 60) if delta.days >= 0 else None

        # Floating and zoned times cannot be compared
        if (start.tzinfo is None) != (end.tzinfo is None):
            return None
        delta = end - start
        return int(delta.total_seconds() / 60)
    except TypeError:
        return None
