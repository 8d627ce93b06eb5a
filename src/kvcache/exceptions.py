"""
Exception hierarchy for kvcache.

All exceptions inherit from CacheError, which carries optional structured
context for logging. Only InvalidKeyError is allowed to escape the routine
read/write methods of a driver; the others surface at construction time or
are converted to cache misses inside the drivers.
"""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class InvalidKeyError(CacheError, ValueError):
    """Raised when a cache key fails validation.

    Attributes:
        key: The rejected key.
        reason: Which rule the key broke (also in context).
    """

    def __init__(self, key: Any, reason: str = "") -> None:
        super().__init__(
            f"Invalid cache key: {key!r}",
            context={"reason": reason} if reason else None,
        )
        self.key = key
        self.reason = reason


class SerializationError(CacheError):
    """Raised when a value cannot be encoded or stored bytes cannot be decoded.

    Drivers catch this and report a miss (get) or False (set).
    """

    pass


class DriverError(CacheError):
    """Raised when a backend cannot be set up.

    Examples:
        - Cache directory cannot be created or is not writable
        - Redis server unreachable at construction
        - Unknown driver name requested from the manager
    """

    def __init__(self, driver: str, message: str = "", context: dict[str, Any] | None = None) -> None:
        full_message = f"Cache driver '{driver}' error"
        if message:
            full_message = f"{full_message}: {message}"
        super().__init__(full_message, context={"driver": driver, **(context or {})})
        self.driver = driver


class ConfigurationError(CacheError):
    """Raised when cache configuration is invalid or missing."""

    pass
