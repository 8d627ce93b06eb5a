"""
Redis cache driver.

Connection handling, authentication and socket timeouts are left to redis-py.
The driver pings once at construction (retrying with backoff) so that a
misconfigured server fails loudly up front. After that every Redis error is
reported as a miss or False, like the other drivers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import redis
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kvcache.drivers.base import BaseCacheDriver
from kvcache.exceptions import DriverError, SerializationError
from kvcache.logging import get_logger
from kvcache.types import Ttl

logger = get_logger(__name__)

# Characters with special meaning in Redis glob patterns
_GLOB_SPECIAL = set("*?[]\\")

DELETE_BATCH_SIZE = 500


def _escape_glob(value: str) -> str:
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in value)


class RedisDriver(BaseCacheDriver):
    """Cache driver backed by a Redis server.

    Config keys (besides prefix/ttl):
        host: Server host (default 127.0.0.1).
        port: Server port (default 6379).
        password: Optional password.
        database: Database index (default 0).
        timeout: Socket timeout in seconds (default 2.0).
        connect_attempts: Ping attempts at construction (default 3).
    """

    name = "redis"

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        """Initialize the driver.

        Args:
            config: Driver configuration.
            client: Pre-built client to use instead of creating one.

        Raises:
            DriverError: If the server cannot be reached.
        """
        config = config or {}
        super().__init__(config)

        self.host: str = config.get("host") or "127.0.0.1"
        self.port: int = int(config.get("port") or 6379)
        self.database: int = int(config.get("database") or 0)
        self.timeout: float = float(config.get("timeout") or 2.0)
        self.connect_attempts: int = int(config.get("connect_attempts") or 3)

        if client is None:
            client = redis.Redis(
                host=self.host,
                port=self.port,
                password=config.get("password"),
                db=self.database,
                socket_timeout=self.timeout,
                socket_connect_timeout=self.timeout,
            )
        self._client = client

        self._connect()

    def _connect(self) -> None:
        """Ping the server, retrying transient connection failures."""
        try:
            for attempt in Retrying(
                retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                reraise=True,
            ):
                with attempt:
                    self._client.ping()
        except redis.RedisError as e:
            raise DriverError(
                self.name,
                f"cannot connect to Redis server: {e}",
                context={"host": self.host, "port": self.port},
            ) from e

        logger.debug("Connected to Redis", host=self.host, port=self.port, db=self.database)

    @property
    def client(self) -> redis.Redis:
        """The underlying redis-py client."""
        return self._client

    def get(self, key: str, default: Any = None) -> Any:
        prepared_key = self.prepare_key(key)

        try:
            raw = self._client.get(prepared_key)
        except redis.RedisError as e:
            logger.warning("Redis read failed", key=prepared_key, error=str(e))
            return default

        if raw is None:
            return default

        try:
            return self.deserialize_value(raw)
        except SerializationError:
            logger.debug("Ignoring unreadable Redis value", key=prepared_key)
            return default

    def set(self, key: str, value: Any, ttl: Ttl = None) -> bool:
        prepared_key = self.prepare_key(key)

        try:
            serialized = self.serialize_value(value)
        except SerializationError as e:
            logger.warning("Refusing to cache value", key=prepared_key, error=str(e))
            return False

        seconds = self.resolve_ttl(ttl)

        try:
            if seconds is not None and seconds <= 0:
                # Already expired: make sure no stale copy is left behind
                self._client.delete(prepared_key)
                return True
            return bool(self._client.set(prepared_key, serialized, ex=seconds))
        except redis.RedisError as e:
            logger.warning("Redis write failed", key=prepared_key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        prepared_key = self.prepare_key(key)

        try:
            return self._client.delete(prepared_key) > 0
        except redis.RedisError as e:
            logger.warning("Redis delete failed", key=prepared_key, error=str(e))
            return False

    def has(self, key: str) -> bool:
        prepared_key = self.prepare_key(key)

        try:
            return self._client.exists(prepared_key) > 0
        except redis.RedisError as e:
            logger.warning("Redis exists failed", key=prepared_key, error=str(e))
            return False

    def clear(self) -> bool:
        """Remove cached entries.

        With a prefix only ``prefix:*`` keys are deleted, so drivers sharing a
        database do not wipe each other. Without one the database is flushed.
        """
        try:
            if not self.prefix:
                return bool(self._client.flushdb())

            batch: list[Any] = []
            for redis_key in self._client.scan_iter(match=f"{_escape_glob(self.prefix)}:*"):
                batch.append(redis_key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    self._client.delete(*batch)
                    batch = []
            if batch:
                self._client.delete(*batch)
            return True
        except redis.RedisError as e:
            logger.warning("Redis clear failed", prefix=self.prefix, error=str(e))
            return False

    def increment(self, key: str, delta: int | float = 1) -> int | float | None:
        """Atomically add delta using INCRBY/INCRBYFLOAT.

        INCRBY refuses a stored float, so that case is retried with
        INCRBYFLOAT. The key keeps whatever expiry it already had. Returns
        None when the stored value is not a number.
        """
        prepared_key = self.prepare_key(key)

        try:
            if isinstance(delta, float):
                return float(self._client.incrbyfloat(prepared_key, delta))
            try:
                return int(self._client.incrby(prepared_key, delta))
            except redis.ResponseError:
                current = self.get(key)
                if isinstance(current, bool) or not isinstance(current, float):
                    return None
                return float(self._client.incrbyfloat(prepared_key, delta))
        except redis.RedisError as e:
            logger.debug("Redis increment failed", key=prepared_key, error=str(e))
            return None

    def close(self) -> None:
        """Release the client's connections."""
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.debug("Error closing Redis client", error=str(e))
