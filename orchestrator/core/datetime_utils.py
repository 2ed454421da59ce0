"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models use naive UTC).

Usage:
    from orchestrator.core.datetime_utils import utc_now, seconds_from

    now = utc_now()
    lease_until = seconds_from(now, 30)
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def seconds_from(start: datetime, seconds: float) -> datetime:
    """Return `start` shifted forward by `seconds`."""
    return start + timedelta(seconds=seconds)


def sunday_based_weekday(dt: datetime) -> int:
    """Day of week with Sunday = 0 ... Saturday = 6.

    Python's weekday() starts the week on Monday; trigger rules are
    written with Sunday as day zero.
    """
    return (dt.weekday() + 1) % 7


def truncate_to_hour(dt: datetime) -> datetime:
    """Drop minutes, seconds and microseconds."""
    return dt.replace(minute=0, second=0, microsecond=0)


def isoformat_z(dt: datetime) -> str:
    """ISO-8601 string of a naive UTC datetime with a trailing Z."""
    return to_naive_utc(dt).isoformat(timespec="milliseconds") + "Z"
