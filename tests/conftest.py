"""
Pytest configuration and fixtures for kvcache tests.
"""

from __future__ import annotations

import fnmatch
import os
import time
from pathlib import Path
from typing import Any, Generator
from unittest.mock import patch

import pytest
import redis

from kvcache.config import clear_settings_cache
from kvcache.drivers.array_driver import ArrayDriver
from kvcache.drivers.file_driver import FileDriver


class FakeRedis:
    """Minimal in-memory stand-in for a redis-py client.

    Implements only the commands RedisDriver issues, with real expiry
    semantics for ``SET ... EX``.
    """

    def __init__(self) -> None:
        self.store: dict[str, tuple[bytes, float | None]] = {}
        self.closed = False

    def _live(self, key: Any) -> tuple[bytes, float | None] | None:
        key = key.decode() if isinstance(key, bytes) else key
        item = self.store.get(key)
        if item is not None and item[1] is not None and item[1] <= time.time():
            del self.store[key]
            return None
        return item

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> bytes | None:
        item = self._live(key)
        return item[0] if item else None

    def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        self.store[key] = (bytes(value), time.time() + ex if ex else None)
        return True

    def delete(self, *keys: Any) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self.store[key.decode() if isinstance(key, bytes) else key]
                removed += 1
        return removed

    def exists(self, *keys: Any) -> int:
        return sum(1 for key in keys if self._live(key) is not None)

    def flushdb(self) -> bool:
        self.store.clear()
        return True

    def scan_iter(self, match: str | None = None) -> Generator[str, None, None]:
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def incrby(self, key: str, amount: int) -> int:
        item = self._live(key)
        try:
            current = int(item[0]) if item else 0
        except ValueError:
            raise redis.ResponseError("value is not an integer or out of range") from None
        current += amount
        self.store[key] = (str(current).encode(), item[1] if item else None)
        return current

    def incrbyfloat(self, key: str, amount: float) -> float:
        item = self._live(key)
        try:
            current = float(item[0]) if item else 0.0
        except ValueError:
            raise redis.ResponseError("value is not a valid float") from None
        current += amount
        self.store[key] = (repr(current).encode(), item[1] if item else None)
        return current

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Provide an empty in-memory Redis client."""
    return FakeRedis()


@pytest.fixture
def array_driver() -> ArrayDriver:
    """Provide a fresh in-memory driver."""
    return ArrayDriver()


@pytest.fixture
def file_driver(temp_dir: Path) -> FileDriver:
    """Provide a file driver rooted in a temporary directory."""
    return FileDriver({"path": temp_dir / "cache"})


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide cache environment variables pointing at a temp directory."""
    env_vars = {
        "CACHE_DRIVER": "file",
        "CACHE_PREFIX": "",
        "CACHE_PATH": str(temp_dir / "env-cache"),
        "CACHE_FILE_PERMISSIONS": "0640",
        "CACHE_DIRECTORY_PERMISSIONS": "0750",
        "REDIS_HOST": "redis.test",
        "REDIS_PORT": "6380",
        "REDIS_PASSWORD": "s3cret-password",
        "REDIS_CONNECT_ATTEMPTS": "1",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
