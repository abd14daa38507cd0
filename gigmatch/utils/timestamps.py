"""Timestamp utilities for UTC handling.

All timestamps inside gigmatch are timezone-aware UTC datetimes. The store
keeps them as fixed-width ISO 8601 strings so that string ordering matches
chronological ordering.
"""

from datetime import datetime, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware datetimes are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime in the fixed-width storage format.

    Args:
        dt: Datetime to format

    Returns:
        String like ``2026-01-05T10:00:00.000000Z`` or None

    Example:
        >>> from datetime import datetime, timezone
        >>> format_timestamp(datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc))
        '2026-01-05T10:00:00.000000Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return None
    return dt_utc.strftime(STORAGE_FORMAT)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime string to UTC datetime.

    Accepts the storage format as well as anything ``fromisoformat`` handles,
    with or without a trailing ``Z``.

    Args:
        iso_string: ISO 8601 formatted datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if empty or unparseable
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        try:
            return ensure_utc(datetime.strptime(iso_string.strip(), "%Y-%m-%d"))
        except ValueError:
            return None
