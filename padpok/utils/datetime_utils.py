"""
Datetime utility functions.
Provides timezone-safe helpers shared by the match lifecycle and medal engine.
"""

import os
from datetime import datetime
from typing import Callable, Optional
import pytz

# Callable returning the current UTC time; injected wherever "now" matters
Clock = Callable[[], datetime]

MATCH_TIMEZONE = os.getenv("MATCH_TIMEZONE", "Europe/Madrid")


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC datetime.

    Naive values are assumed to already be UTC (some drivers, e.g. SQLite,
    drop tzinfo on the way back from the database).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def to_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Convert a datetime to the configured match timezone.

    Args:
        value: Aware or naive (UTC) datetime
        tz_name: Optional IANA zone name overriding MATCH_TIMEZONE

    Returns:
        Aware datetime in the local zone
    """
    zone = pytz.timezone(tz_name or MATCH_TIMEZONE)
    return ensure_utc(value).astimezone(zone)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO 8601 (UTC) or return None."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
