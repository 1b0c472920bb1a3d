"""Utility functions and helpers."""

from subscription_sync.utils.keyed_lock import KeyedLock
from subscription_sync.utils.timestamps import (
    ensure_utc,
    from_epoch_seconds,
    utc_now,
)

__all__ = [
    "KeyedLock",
    "ensure_utc",
    "from_epoch_seconds",
    "utc_now",
]
