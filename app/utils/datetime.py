"""
Utilities for standardized datetime handling.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current UTC time
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is UTC timezone-aware.

    Naive values are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 date or datetime string.

    Accepts a trailing ``Z`` and bare ``YYYY-MM-DD`` dates.

    Args:
        date_string: String to parse

    Returns:
        datetime: Parsed UTC datetime or None if empty/invalid
    """
    if not date_string:
        return None
    try:
        if date_string.endswith('Z'):
            date_string = date_string[:-1] + '+00:00'
        return ensure_utc(datetime.fromisoformat(date_string))
    except (ValueError, TypeError):
        return None
