"""
Value serialization for cache storage.

Values are stored as JSON (orjson). JSON is self-describing and decoding it
never reconstructs native objects or code, so a tampered cache entry cannot
execute anything on read. Objects are flattened to plain mappings on the way
in and come back as dicts.
"""

from __future__ import annotations

import dataclasses
import io
import math
from collections.abc import Mapping
from types import ModuleType
from typing import Any

import orjson

from kvcache.exceptions import SerializationError


def _reject_non_finite(value: Any, seen: set[int] | None = None) -> None:
    """Raise ValueError if NaN or +/-Infinity appears anywhere in value.

    orjson writes these as null instead of failing, which would silently
    change the stored data.
    """
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Out of range float values are not JSON compliant: {value!r}")
        return
    if value is None or isinstance(value, (str, bytes, int)):
        return

    seen = set() if seen is None else seen
    if id(value) in seen:
        # Cycles are reported by orjson itself
        return
    seen.add(id(value))

    if isinstance(value, Mapping):
        items: Any = value.values()
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = value
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        items = [getattr(value, f.name) for f in dataclasses.fields(value)]
    else:
        return

    for item in items:
        _reject_non_finite(item, seen)


def _encode_default(value: Any) -> Any:
    """Fallback encoder for types orjson does not handle natively."""
    if isinstance(value, (io.IOBase, ModuleType)) or callable(value):
        raise TypeError(f"Type is not cacheable: {type(value).__name__}")

    if isinstance(value, (set, frozenset)):
        encoded: Any = list(value)
    elif isinstance(value, Mapping):
        encoded = dict(value)
    elif hasattr(value, "model_dump"):
        # JSON mode turns NaN into null, so check the python dump first
        _reject_non_finite(value.model_dump())
        return value.model_dump(mode="json")
    else:
        try:
            encoded = vars(value)
        except TypeError:
            raise TypeError(f"Type is not JSON serializable: {type(value).__name__}") from None

    _reject_non_finite(encoded)
    return encoded


class ValueSerializer:
    """Converts values to and from the cache wire format (JSON bytes)."""

    @staticmethod
    def serialize(value: Any) -> bytes:
        """Serialize a value for storage.

        Args:
            value: Value to serialize.

        Returns:
            JSON-encoded bytes.

        Raises:
            SerializationError: If the value (or anything nested in it) cannot
                be represented, e.g. cyclic references, non-string mapping keys,
                integers wider than 64 bits, NaN or infinite floats, functions
                or open file handles.
        """
        try:
            _reject_non_finite(value)
            return orjson.dumps(value, default=_encode_default)
        except (orjson.JSONEncodeError, TypeError, ValueError, RecursionError) as e:
            raise SerializationError(
                "Failed to serialize value",
                context={"type": type(value).__name__, "error": str(e)},
            ) from e

    @staticmethod
    def deserialize(data: bytes | bytearray | memoryview | str) -> Any:
        """Deserialize stored bytes.

        Args:
            data: JSON document as bytes or str.

        Returns:
            The decoded value.

        Raises:
            SerializationError: If the input is not a valid JSON document.
        """
        try:
            return orjson.loads(data)
        except (orjson.JSONDecodeError, TypeError) as e:
            raise SerializationError(
                "Failed to deserialize value", context={"error": str(e)}
            ) from e

    @classmethod
    def can_serialize(cls, value: Any) -> bool:
        """Check whether a value would serialize, without raising."""
        try:
            cls.serialize(value)
        except SerializationError:
            return False
        return True
