"""
kvcache: pluggable key-value caching.

A uniform driver contract over in-memory, on-disk and Redis storage, with
TTL expiry, key validation, JSON value serialization and tag-based
invalidation.
"""

from kvcache.drivers import ArrayDriver, BaseCacheDriver, CacheProtocol, FileDriver, RedisDriver
from kvcache.exceptions import (
    CacheError,
    ConfigurationError,
    DriverError,
    InvalidKeyError,
    SerializationError,
)
from kvcache.keys import KeyValidator
from kvcache.manager import CacheManager
from kvcache.serialization import ValueSerializer
from kvcache.tagged import TaggedCache

__version__ = "0.1.0"

__all__ = [
    "ArrayDriver",
    "BaseCacheDriver",
    "CacheError",
    "CacheManager",
    "CacheProtocol",
    "ConfigurationError",
    "DriverError",
    "FileDriver",
    "InvalidKeyError",
    "KeyValidator",
    "RedisDriver",
    "SerializationError",
    "TaggedCache",
    "ValueSerializer",
    "__version__",
]
