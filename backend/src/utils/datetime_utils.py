"""
Datetime utilities for consistent timezone handling across the application.

All instants at the engine boundary are timezone-aware UTC datetimes.
Weekly schedule times are naive wall-clock values interpreted in a
provider's IANA zone.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import TimezoneResolutionError

logger = logging.getLogger(__name__)

END_OF_DAY = "24:00"


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware UTC.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).

    Args:
        dt: Datetime to normalise

    Returns:
        Timezone-aware UTC datetime, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def require_utc(dt: datetime) -> datetime:
    """Like ensure_utc but for values that must be present."""
    result = ensure_utc(dt)
    if result is None:
        raise ValueError("Cannot normalise None datetime")
    return result


def parse_time_of_day(value: str) -> Tuple[time, bool]:
    """
    Parse a wall-clock "HH:MM" (or "HH:MM:SS") string.

    "24:00" is accepted as the end of the day and returned as midnight with
    the second element set to True, meaning "midnight of the following day".

    Returns:
        (time, rolls_over_to_next_day)

    Raises:
        ValueError: If the string is not a valid time of day
    """
    if value is None:
        raise ValueError("Time string cannot be empty")
    text = value.strip()
    if text in (END_OF_DAY, "24:00:00"):
        return time(0, 0), True

    parts = text.split(':')
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time format (expected HH:MM): {value}")
    try:
        numbers = [int(p) for p in parts]
    except ValueError as e:
        raise ValueError(f"Invalid time format (expected HH:MM): {value}") from e
    hour, minute = numbers[0], numbers[1]
    second = numbers[2] if len(numbers) == 3 else 0
    if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
        raise ValueError(f"Invalid time of day: {value}")
    return time(hour, minute, second), False


def format_time_of_day(value: time, end_of_day: bool = False) -> str:
    """Format a wall-clock time as "HH:MM" ("24:00" for end of day)."""
    if end_of_day:
        return END_OF_DAY
    return value.strftime('%H:%M')


@lru_cache(maxsize=256)
def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA zone identifier.

    Raises:
        TimezoneResolutionError: If the identifier is empty or unknown
    """
    if not tz_name or not tz_name.strip():
        raise TimezoneResolutionError("Provider has no time zone configured")
    try:
        return ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise TimezoneResolutionError(f"Unknown time zone '{tz_name}'") from e


def local_wall_clock_to_utc(day, wall_clock: time, tz: ZoneInfo, next_day: bool = False) -> datetime:
    """
    Convert a local date + wall-clock time to UTC using that day's offset.

    The offset is looked up for the specific day, so blocks on DST
    transition days map to a different UTC duration than on other days.
    """
    if next_day:
        day = day + timedelta(days=1)
    local = datetime.combine(day, wall_clock, tzinfo=tz)
    return local.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> float:
    """Length of [start, end) in minutes (0 if end <= start)."""
    return max(0.0, (end - start).total_seconds() / 60)
