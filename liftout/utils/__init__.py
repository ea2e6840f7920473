"""Shared utility helpers."""

from .ids import new_id
from .timestamps import add_days, ensure_utc, format_timestamp, parse_iso_datetime, utc_now

__all__ = [
    "new_id",
    "utc_now",
    "ensure_utc",
    "add_days",
    "format_timestamp",
    "parse_iso_datetime",
]
