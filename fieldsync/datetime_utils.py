"""
DateTime utility functions for queue timestamps.
"""
import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def now_ms():
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(timestamp_ms):
    """Convert epoch milliseconds to an aware UTC datetime (None passes through)."""
    if timestamp_ms is None:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def format_timestamp_local(timestamp_ms, tz_name="America/Denver"):
    """
    Format an epoch-millisecond timestamp in the site's local time zone.
    Returns format like: "October 15, 2025 02:30:45 PM"

    Args:
        timestamp_ms: epoch milliseconds, or None
        tz_name: IANA time zone name

    Returns:
        str: Formatted datetime string, or None if timestamp_ms is None
    """
    dt = ms_to_datetime(timestamp_ms)
    if dt is None:
        return None
    return dt.astimezone(ZoneInfo(tz_name)).strftime("%B %d, %Y %I:%M:%S %p")


def format_datetime_utc(dt):
    """
    Format a datetime as ISO 8601 in UTC. Naive datetimes are assumed UTC.

    Args:
        dt: datetime object or None

    Returns:
        str: ISO string like "2025-10-15T14:30:45+00:00", or None
    """
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
