"""
Timestamp utilities.

The database stores naive UTC datetimes; API responses render them as
ISO 8601 with an explicit UTC offset.
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get the current time as a naive UTC datetime (database convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_from_now(minutes: int) -> datetime:
    """Naive UTC datetime `minutes` in the future."""
    return utc_now() + timedelta(minutes=minutes)


def format_utc_iso(dt: datetime) -> str:
    """
    Format a datetime as ISO 8601 in UTC.

    Args:
        dt: A datetime object (naive assumed UTC, or timezone-aware)

    Returns:
        ISO 8601 formatted string, or None when dt is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc).isoformat()
