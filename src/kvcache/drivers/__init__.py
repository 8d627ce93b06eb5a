"""
Cache drivers.

- ArrayDriver (array_driver.py): in-process dict storage
- FileDriver (file_driver.py): one file per key with atomic writes
- RedisDriver (redis_driver.py): remote storage on a Redis server
"""

from kvcache.drivers.array_driver import ArrayDriver
from kvcache.drivers.base import BaseCacheDriver, CacheProtocol
from kvcache.drivers.file_driver import FileDriver
from kvcache.drivers.redis_driver import RedisDriver

__all__ = [
    "ArrayDriver",
    "BaseCacheDriver",
    "CacheProtocol",
    "FileDriver",
    "RedisDriver",
]
