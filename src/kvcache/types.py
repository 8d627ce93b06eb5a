"""
Core types for kvcache.

- CacheEntry: an in-memory cache record with expiry metadata
- Ttl: accepted time-to-live forms
- Helpers for TTL normalization and timestamps
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Union

Ttl = Union[int, float, timedelta, None]


def ttl_seconds(ttl: Ttl) -> int | None:
    """Normalize a TTL to whole seconds.

    Args:
        ttl: Seconds as int/float, a timedelta, or None.

    Returns:
        Seconds (rounded down), or None for no expiry.
    """
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return int(ttl.total_seconds())
    return int(ttl)


def epoch_now() -> float:
    """Get the current wall-clock time in epoch seconds."""
    return time.time()


@dataclass
class CacheEntry:
    """A serialized value with expiry metadata.

    Expiry is checked when the entry is read; nothing sweeps it in the
    background.
    """

    value: bytes
    expires_at: float | None = None
    created_at: float = field(default_factory=epoch_now)

    def is_expired(self, now: float) -> bool:
        """Check whether the entry is past its expiry at the given time."""
        return self.expires_at is not None and self.expires_at < now
