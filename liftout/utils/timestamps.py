"""UTC timestamp helpers.

Every timestamp the engine persists or compares is timezone-aware UTC. Naive
datetimes coming from callers or from SQLite are interpreted as UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Coerce a datetime to aware UTC.

    Naive values are assumed to already be UTC; aware values are converted.

    Example:
        >>> ensure_utc(datetime(2025, 3, 1, 9, 30)).tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_days(dt: datetime, days: int) -> datetime:
    """Return dt shifted by a whole number of days, in UTC."""
    return ensure_utc(dt) + timedelta(days=days)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """ISO 8601 with a ``Z`` suffix, or None.

    Example:
        >>> format_timestamp(datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc))
        '2025-03-01T09:30:00Z'
    """
    if dt is None:
        return None
    return ensure_utc(dt).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` suffix accepted) into aware UTC.

    Returns None for empty or unparseable input.
    """
    if not value or not value.strip():
        return None

    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None
