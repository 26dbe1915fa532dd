"""Logical day calculation for streak tracking.

A "logical day" does not end at midnight. With the default boundary of 4am,
writing at 03:00 on Jan 5 still belongs to Jan 4, while writing at 05:00 on
Jan 5 belongs to Jan 5. Logical dates are plain ``datetime.date`` values so
they compare by equality and subtract into whole days regardless of the
timezone they were derived in.
"""

import logging
from datetime import date, datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.session_config import DEFAULT_DAY_BOUNDARY_HOUR, DEFAULT_TIMEZONE

log = logging.getLogger("freewrite.logical_date")


class InvalidConfiguration(ValueError):
    """Raised for an unknown timezone or an out-of-range day boundary hour."""

    pass


def resolve_timezone(tz_name: str) -> ZoneInfo:
    """Look up an IANA timezone.

    Args:
        tz_name: Timezone identifier such as ``Europe/Oslo``

    Returns:
        ZoneInfo for the identifier

    Raises:
        InvalidConfiguration: If the identifier is not known
    """
    if not tz_name or not isinstance(tz_name, str):
        raise InvalidConfiguration(f"Invalid timezone: {tz_name!r}")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        log.warning(f"Unknown timezone {tz_name!r}: {e}")
        raise InvalidConfiguration(f"Unknown timezone: {tz_name!r}") from e


def validate_boundary_hour(boundary_hour: int) -> int:
    if isinstance(boundary_hour, bool) or not isinstance(boundary_hour, int):
        raise InvalidConfiguration(f"Day boundary hour must be an integer, got {boundary_hour!r}")
    if not 0 <= boundary_hour <= 23:
        raise InvalidConfiguration(f"Day boundary hour must be 0-23, got {boundary_hour}")
    return boundary_hour


def logical_date(
    timestamp: datetime | None = None,
    boundary_hour: int = DEFAULT_DAY_BOUNDARY_HOUR,
    timezone: str = DEFAULT_TIMEZONE,
) -> date:
    """Calculate the logical date of a timestamp.

    Args:
        timestamp: Moment of writing; naive datetimes are taken as UTC,
            None means now
        boundary_hour: Hour (0-23) at which the logical day starts
        timezone: User's IANA timezone

    Returns:
        The logical calendar date

    Raises:
        InvalidConfiguration: If timezone or boundary_hour is invalid
    """
    tz = resolve_timezone(timezone)
    validate_boundary_hour(boundary_hour)

    if timestamp is None:
        timestamp = datetime.now(dt_timezone.utc)
    elif timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=dt_timezone.utc)

    local = timestamp.astimezone(tz)
    if local.hour < boundary_hour:
        return local.date() - timedelta(days=1)
    return local.date()


def days_since(last: date, current: date) -> int:
    """Whole logical days from ``last`` to ``current`` (negative if current is earlier)."""
    return (current - last).days


def is_same_day(first: date, second: date) -> bool:
    return first == second


def are_consecutive_days(first: date, second: date) -> bool:
    return abs(days_since(first, second)) == 1


__all__ = [
    "InvalidConfiguration",
    "logical_date",
    "resolve_timezone",
    "validate_boundary_hour",
    "days_since",
    "is_same_day",
    "are_consecutive_days",
]
