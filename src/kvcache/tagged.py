"""
Tag-based grouping and invalidation on top of any driver.

A TaggedCache carries a set of tag names. Keys written through it are stored
under ``tagged_<fingerprint>_<key>``, where the fingerprint is the md5 of the
sorted, ``|``-joined tag names, so the same tag set resolves to the same
storage key whatever order the tags were added in.

For each tag, the original keys written under it are recorded in a plain
cache entry ``tag_<tag>`` (a list). invalidate_tags() walks those lists.

Limitations:
- invalidate_tags() deletes keys through the fingerprint of the tag set
  active on *this* instance. A key written under {a, b} is not reached by an
  instance tagged only {a}.
- Registry updates are read-modify-write without locking; concurrent writers
  sharing a tag can lose each other's additions.
- The storage key adds 40 characters (``tagged_``, 32 hex digits, ``_``) to
  the original key, so with tags active only keys up to 210 characters fit
  the 250-character limit; longer ones raise InvalidKeyError from the driver.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping
from typing import Any

from kvcache.drivers.base import CacheProtocol
from kvcache.exceptions import InvalidKeyError
from kvcache.keys import KeyValidator
from kvcache.logging import get_logger
from kvcache.types import Ttl

logger = get_logger(__name__)

TAG_PREFIX = "tag_"
TAGGED_KEY_PREFIX = "tagged_"


def _as_list(tags: str | Iterable[str]) -> list[str]:
    return [tags] if isinstance(tags, str) else list(tags)


class TaggedCache(CacheProtocol):
    """Cache view that namespaces keys by a tag set and tracks them per tag."""

    def __init__(self, driver: CacheProtocol, tags: str | Iterable[str] | None = None) -> None:
        """Initialize the tagged view.

        Args:
            driver: Underlying cache; shared, not owned.
            tags: Initial tag name(s).
        """
        self._driver = driver
        self._tags: list[str] = []
        if tags is not None:
            self.tags(tags)

    @property
    def driver(self) -> CacheProtocol:
        """The wrapped cache."""
        return self._driver

    @property
    def active_tags(self) -> list[str]:
        """Tags currently applied, in insertion order."""
        return list(self._tags)

    def tags(self, tags: str | Iterable[str]) -> TaggedCache:
        """Add tag(s) to this view.

        Returns:
            self, for chaining.

        Raises:
            InvalidKeyError: If a tag name cannot form a valid registry key.
        """
        for tag in _as_list(tags):
            if not isinstance(tag, str):
                raise InvalidKeyError(tag, "tag names must be strings")
            KeyValidator.validate(f"{TAG_PREFIX}{tag}")
            if tag not in self._tags:
                self._tags.append(tag)
        return self

    def fingerprint(self) -> str | None:
        """Hash of the sorted tag set, or None when there are no tags."""
        if not self._tags:
            return None
        joined = "|".join(sorted(self._tags))
        return hashlib.md5(joined.encode("utf-8"), usedforsecurity=False).hexdigest()

    def tagged_key(self, key: str) -> str:
        """Map an original key to its storage key under the current tags."""
        KeyValidator.validate(key)
        fingerprint = self.fingerprint()
        if fingerprint is None:
            return key
        return f"{TAGGED_KEY_PREFIX}{fingerprint}_{key}"

    def _register(self, key: str) -> None:
        """Record an original key in the registry of every active tag."""
        for tag in self._tags:
            tag_key = f"{TAG_PREFIX}{tag}"
            keys = self._driver.get(tag_key, [])
            if not isinstance(keys, list):
                keys = []

            if key not in keys:
                keys.append(key)
                if not self._driver.set(tag_key, keys):
                    logger.warning("Could not update tag registry", tag=tag, key=key)

    def get(self, key: str, default: Any = None) -> Any:
        return self._driver.get(self.tagged_key(key), default)

    def set(self, key: str, value: Any, ttl: Ttl = None) -> bool:
        result = self._driver.set(self.tagged_key(key), value, ttl)
        if result:
            self._register(key)
        return result

    def delete(self, key: str) -> bool:
        return self._driver.delete(self.tagged_key(key))

    def has(self, key: str) -> bool:
        return self._driver.has(self.tagged_key(key))

    def clear(self) -> bool:
        """Clear the whole underlying cache, tagged or not."""
        return self._driver.clear()

    def get_multiple(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        return {key: self.get(key, default) for key in keys}

    def set_multiple(self, values: Mapping[str, Any], ttl: Ttl = None) -> bool:
        success = True
        for key, value in values.items():
            if not self.set(key, value, ttl):
                success = False
        return success

    def delete_multiple(self, keys: Iterable[str]) -> int:
        return sum(1 for key in keys if self.delete(key))

    def increment(self, key: str, delta: int | float = 1) -> int | float | None:
        return self._driver.increment(self.tagged_key(key), delta)

    def decrement(self, key: str, delta: int | float = 1) -> int | float | None:
        return self._driver.decrement(self.tagged_key(key), delta)

    def pull(self, key: str, default: Any = None) -> Any:
        return self._driver.pull(self.tagged_key(key), default)

    def invalidate_tags(self, tags: str | Iterable[str]) -> bool:
        """Delete every key registered under the given tag(s).

        Keys are deleted through this instance's current fingerprint, then
        the tag's registry entry is removed.

        Returns:
            False if a non-empty registry entry could not be removed.
        """
        success = True

        for tag in _as_list(tags):
            keys = self.get_keys_by_tag(tag)
            if not keys:
                continue

            removed = 0
            for key in keys:
                if not KeyValidator.is_valid(key):
                    continue
                if self._driver.delete(self.tagged_key(key)):
                    removed += 1

            if not self._driver.delete(f"{TAG_PREFIX}{tag}"):
                success = False

            logger.debug("Invalidated tag", tag=tag, registered=len(keys), removed=removed)

        return success

    def get_keys_by_tag(self, tag: str) -> list[Any]:
        """Get the original keys registered under a tag (empty if none)."""
        keys = self._driver.get(f"{TAG_PREFIX}{tag}", [])
        return list(keys) if isinstance(keys, list) else []
