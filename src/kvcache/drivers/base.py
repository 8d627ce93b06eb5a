"""
Base classes for cache drivers.

This module implements:
- CacheProtocol: the contract every driver (and TaggedCache) satisfies
- BaseCacheDriver: shared behavior layered over a concrete backend
  - key preparation (validation + prefix)
  - value (de)serialization
  - batch operations expressed as single-key operations
  - increment/decrement as read-modify-write

Concrete drivers implement get/set/delete/has/clear. Those methods must not
raise for backend or serialization problems: they report a miss or False.
InvalidKeyError from prepare_key is the only exception that escapes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from kvcache.keys import KeyValidator
from kvcache.serialization import ValueSerializer
from kvcache.types import Ttl, epoch_now, ttl_seconds


class CacheProtocol(ABC):
    """Abstract interface for cache implementations."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the cache, or default on a miss."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Ttl = None) -> bool:
        """Set a value in the cache. Returns True on success."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a value from the cache. Returns True if it was present."""
        ...

    @abstractmethod
    def has(self, key: str) -> bool:
        """Check if a live (non-expired) key exists in the cache."""
        ...

    @abstractmethod
    def clear(self) -> bool:
        """Remove every entry from the cache."""
        ...

    @abstractmethod
    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        """Get several values at once."""
        ...

    @abstractmethod
    def set_multiple(self, values: Mapping[str, Any], ttl: Ttl = None) -> bool:
        """Set several values at once. True only if every write succeeded."""
        ...

    @abstractmethod
    def delete_multiple(self, keys: Iterable[str]) -> int:
        """Delete several keys. Returns how many were actually removed."""
        ...

    @abstractmethod
    def increment(self, key: str, delta: int | float = 1) -> int | float | None:
        """Add delta to a numeric value. Returns the new value or None."""
        ...

    @abstractmethod
    def decrement(self, key: str, delta: int | float = 1) -> int | float | None:
        """Subtract delta from a numeric value. Returns the new value or None."""
        ...

    @abstractmethod
    def pull(self, key: str, default: Any = None) -> Any:
        """Get a value and delete it."""
        ...


class BaseCacheDriver(CacheProtocol):
    """Shared behavior for all storage backends.

    Config keys understood here:
        prefix: Prepended to every key as ``prefix:key`` (default: none).
        ttl: Default time-to-live in seconds or timedelta (default: no expiry).
    """

    name = "base"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        config = config or {}
        self.prefix: str = config.get("prefix") or ""
        self.default_ttl: int | None = ttl_seconds(config.get("ttl"))

    def prepare_key(self, key: str) -> str:
        """Validate a key and apply the driver prefix.

        Raises:
            InvalidKeyError: If the key fails validation.
        """
        KeyValidator.validate(key)
        return f"{self.prefix}:{key}" if self.prefix else key

    def serialize_value(self, value: Any) -> bytes:
        """Serialize a value (raises SerializationError)."""
        return ValueSerializer.serialize(value)

    def deserialize_value(self, data: bytes | str) -> Any:
        """Deserialize a value (raises SerializationError)."""
        return ValueSerializer.deserialize(data)

    def resolve_ttl(self, ttl: Ttl) -> int | None:
        """Per-call TTL, else the driver default, else None (no expiry)."""
        seconds = ttl_seconds(ttl)
        return seconds if seconds is not None else self.default_ttl

    def _now(self) -> float:
        return epoch_now()

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        return {key: self.get(key, default) for key in keys}

    def set_multiple(self, values: Mapping[str, Any], ttl: Ttl = None) -> bool:
        success = True
        for key, value in values.items():
            # No short-circuit: every key gets its write attempt
            if not self.set(key, value, ttl):
                success = False
        return success

    def delete_multiple(self, keys: Iterable[str]) -> int:
        return sum(1 for key in keys if self.delete(key))

    def pull(self, key: str, default: Any = None) -> Any:
        value = self.get(key, default)
        self.delete(key)
        return value

    def increment(self, key: str, delta: int | float = 1) -> int | float | None:
        """Add delta to the stored number (missing keys count as 0).

        The write goes through set() without a TTL, so the driver default
        applies and any TTL the entry had before is not carried over.

        Returns:
            The new value, or None if the stored value is not a number or
            the write failed.
        """
        current = self.get(key, 0)

        if isinstance(current, bool) or not isinstance(current, (int, float)):
            return None

        new_value = current + delta

        if self.set(key, new_value):
            return new_value

        return None

    def decrement(self, key: str, delta: int | float = 1) -> int | float | None:
        return self.increment(key, -delta)

    def remember(self, key: str, ttl: Ttl, factory: Callable[[], Any]) -> Any:
        """Return the cached value, or compute, store and return it.

        A miss is detected with a private sentinel, so cached None/False
        values are returned as-is instead of being recomputed.
        """
        missing = object()
        value = self.get(key, missing)
        if value is not missing:
            return value

        value = factory()
        self.set(key, value, ttl)
        return value

    def clean_expired(self) -> int:
        """Remove expired entries. Backends with native expiry have none."""
        return 0
