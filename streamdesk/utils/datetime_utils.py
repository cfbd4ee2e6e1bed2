"""
Centralized datetime utilities.

The database stores naive UTC timestamps (TIMESTAMP WITHOUT TIME ZONE).
All datetime handling should go through these helpers so that values coming
from clients (often timezone-aware ISO strings) and values produced by the
service agree before they hit storage.
"""

from datetime import datetime
from typing import Optional, Union

import pytz


def utc_now() -> datetime:
    """Get current time in UTC (naive)."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert any datetime to naive UTC for database storage.

    Aware datetimes are converted to UTC and stripped of tzinfo.
    Naive datetimes are assumed to already be UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        return dt.astimezone(pytz.UTC).replace(tzinfo=None)

    return dt


def to_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC tzinfo to a naive UTC datetime (for API responses and payloads)."""
    if dt is None:
        return None

    if dt.tzinfo is not None:
        return dt.astimezone(pytz.UTC)

    return pytz.UTC.localize(dt)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string (or pass through a datetime) into naive UTC.

    Handles the 'Z' suffix that JavaScript clients emit.

    Raises:
        ValueError: If the string is not a valid ISO timestamp
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return to_naive_utc(value)

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    return to_naive_utc(datetime.fromisoformat(text))


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Format a stored naive UTC datetime as ISO-8601 with a trailing 'Z'."""
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat(timespec="milliseconds") + "Z"
