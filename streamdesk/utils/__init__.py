"""Utility modules for StreamDesk."""

from .datetime_utils import (
    utc_now,
    to_naive_utc,
    to_aware_utc,
    parse_timestamp,
    isoformat_utc,
)

__all__ = [
    "utc_now",
    "to_naive_utc",
    "to_aware_utc",
    "parse_timestamp",
    "isoformat_utc",
]
