"""
Time helpers.

All timestamps are stored as naive UTC datetimes; the database columns are
plain DateTime and SQLite drops tzinfo anyway.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 with a trailing Z, or None."""
    if value is None:
        return None
    return to_naive_utc(value).isoformat() + "Z"
