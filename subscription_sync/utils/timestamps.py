"""Timestamp helpers.

Provider payloads carry epoch seconds; records store timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Optional, Union

EpochOrDatetime = Union[int, float, datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_seconds(value: Optional[EpochOrDatetime]) -> Optional[datetime]:
    """Convert epoch seconds (or a datetime) to a UTC datetime.

    Args:
        value: Unix timestamp in seconds, a datetime, or None

    Returns:
        UTC datetime, or None when value is None

    Raises:
        ValueError: If value is not a non-negative number
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"Invalid epoch timestamp: {value!r}")
    return datetime.fromtimestamp(value, tz=timezone.utc)
