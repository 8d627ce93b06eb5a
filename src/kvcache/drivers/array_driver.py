"""
In-memory cache driver.

Entries live in a plain dict owned by the driver instance and disappear with
it. Useful for tests, development and single-process request scopes.

Not thread-safe: concurrent mutation from several threads needs an external
lock around the driver.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from kvcache.drivers.base import BaseCacheDriver
from kvcache.exceptions import SerializationError
from kvcache.logging import get_logger
from kvcache.types import CacheEntry, Ttl

logger = get_logger(__name__)


class ArrayDriver(BaseCacheDriver):
    """Volatile dict-backed cache with per-entry expiry timestamps."""

    name = "array"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        super().__init__(config)
        self._storage: dict[str, CacheEntry] = {}

    def _live_entry(self, prepared_key: str) -> CacheEntry | None:
        """Look up an entry, evicting it if it has expired."""
        entry = self._storage.get(prepared_key)
        if entry is None:
            return None

        if entry.is_expired(self._now()):
            del self._storage[prepared_key]
            return None

        return entry

    def get(self, key: str, default: Any = None) -> Any:
        prepared_key = self.prepare_key(key)

        entry = self._live_entry(prepared_key)
        if entry is None:
            return default

        try:
            return self.deserialize_value(entry.value)
        except SerializationError:
            logger.debug("Evicting unreadable entry", key=prepared_key)
            self._storage.pop(prepared_key, None)
            return default

    def set(self, key: str, value: Any, ttl: Ttl = None) -> bool:
        prepared_key = self.prepare_key(key)

        try:
            serialized = self.serialize_value(value)
        except SerializationError as e:
            logger.warning("Refusing to cache value", key=prepared_key, error=str(e))
            return False

        now = self._now()
        seconds = self.resolve_ttl(ttl)

        self._storage[prepared_key] = CacheEntry(
            value=serialized,
            expires_at=now + seconds if seconds is not None else None,
            created_at=now,
        )
        return True

    def delete(self, key: str) -> bool:
        prepared_key = self.prepare_key(key)
        return self._storage.pop(prepared_key, None) is not None

    def has(self, key: str) -> bool:
        return self._live_entry(self.prepare_key(key)) is not None

    def clear(self) -> bool:
        self._storage.clear()
        return True

    def clean_expired(self) -> int:
        """Evict every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._now()
        expired = [k for k, entry in self._storage.items() if entry.is_expired(now)]
        for prepared_key in expired:
            del self._storage[prepared_key]

        if expired:
            logger.debug("Cleaned expired entries", count=len(expired))
        return len(expired)
