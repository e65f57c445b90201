"""
Datetime utility functions for handling timezone-aware datetimes.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    Components take a ``clock`` callable that defaults to this function, so
    tests can drive window rollover without patching.

    Returns:
        A timezone-aware datetime object representing the current time in UTC.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Ensure a datetime object is timezone-aware (UTC).

    Args:
        dt: The datetime to ensure is timezone-aware

    Returns:
        A timezone-aware datetime object in UTC

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("datetime cannot be None")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def hour_window_key(dt: datetime) -> str:
    """Window key for the hourly counter, e.g. ``2024-03-05-14``."""
    return dt.strftime("%Y-%m-%d-%H")


def day_window_key(dt: datetime) -> str:
    """Window key for the daily counter, e.g. ``2024-03-05``."""
    return dt.strftime("%Y-%m-%d")


def start_of_next_hour(dt: datetime) -> datetime:
    return dt.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def start_of_next_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
