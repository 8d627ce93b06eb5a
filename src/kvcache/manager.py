"""
Registry of named cache drivers.

CacheManager maps driver names to factory callables and lazily builds one
driver instance per name. It is an ordinary object: callers create one (or
use CacheManager.from_settings()) and pass it around. Nothing here is a
process-wide singleton.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from kvcache.config import Settings, get_settings
from kvcache.drivers.array_driver import ArrayDriver
from kvcache.drivers.base import CacheProtocol
from kvcache.drivers.file_driver import FileDriver
from kvcache.drivers.redis_driver import RedisDriver
from kvcache.exceptions import ConfigurationError, DriverError
from kvcache.logging import get_logger
from kvcache.tagged import TaggedCache
from kvcache.types import Ttl

logger = get_logger(__name__)

DriverFactory = Callable[[Mapping[str, Any]], CacheProtocol]

# Built-in drivers by configuration name
DEFAULT_FACTORIES: dict[str, DriverFactory] = {
    "array": ArrayDriver,
    "file": FileDriver,
    "redis": RedisDriver,
}


class CacheManager:
    """Builds and hands out named cache drivers.

    Config shape::

        {
            "default": "file",
            "drivers": {
                "file": {"path": "/var/cache/app", "ttl": 3600},
                "redis": {"host": "cache.internal", "prefix": "app"},
            },
        }
    """

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        factories: Mapping[str, DriverFactory] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Default driver name and per-driver config mappings.
            factories: Extra or replacement factories, merged over the built-ins.
        """
        config = config or {}
        self._driver_configs: dict[str, Mapping[str, Any]] = dict(config.get("drivers") or {})
        self._default_driver: str = config.get("default") or "array"
        self._factories: dict[str, DriverFactory] = dict(DEFAULT_FACTORIES)
        if factories:
            self._factories.update(factories)
        self._drivers: dict[str, CacheProtocol] = {}

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CacheManager:
        """Create a manager configured from environment settings."""
        settings = settings or get_settings()
        return cls(settings.manager_config())

    @property
    def default_driver(self) -> str:
        """Name of the driver used when none is given."""
        return self._default_driver

    def set_default_driver(self, name: str) -> None:
        """Change the default driver name."""
        if not name:
            raise ConfigurationError("Default driver name cannot be empty")
        self._default_driver = name

    @property
    def available_drivers(self) -> list[str]:
        """Names that can be resolved, built or registered."""
        return sorted(set(self._factories) | set(self._drivers))

    def register_factory(self, name: str, factory: DriverFactory) -> None:
        """Register (or replace) the factory used to build a named driver.

        An already-built instance under that name is dropped so the next
        lookup uses the new factory.
        """
        self._factories[name] = factory
        self._drivers.pop(name, None)

    def register_driver(self, name: str, driver: CacheProtocol) -> None:
        """Register a ready-made driver instance under a name."""
        self._drivers[name] = driver

    def driver(self, name: str | None = None) -> CacheProtocol:
        """Get a driver by name, building it on first use.

        Raises:
            DriverError: If the name is unknown or the driver cannot be built.
        """
        name = name or self._default_driver

        if name in self._drivers:
            return self._drivers[name]

        factory = self._factories.get(name)
        if factory is None:
            raise DriverError(name, "unknown cache driver")

        driver = factory(self._driver_configs.get(name, {}))
        self._drivers[name] = driver
        logger.info("Cache driver ready", driver=name, type=type(driver).__name__)
        return driver

    def tags(self, tags: str | Iterable[str], driver: str | None = None) -> TaggedCache:
        """Get a tagged view over a driver."""
        return TaggedCache(self.driver(driver), tags)

    def get(self, key: str, default: Any = None, driver: str | None = None) -> Any:
        return self.driver(driver).get(key, default)

    def set(self, key: str, value: Any, ttl: Ttl = None, driver: str | None = None) -> bool:
        return self.driver(driver).set(key, value, ttl)

    def delete(self, key: str, driver: str | None = None) -> bool:
        return self.driver(driver).delete(key)

    def has(self, key: str, driver: str | None = None) -> bool:
        return self.driver(driver).has(key)

    def clear(self, driver: str | None = None) -> bool:
        return self.driver(driver).clear()
