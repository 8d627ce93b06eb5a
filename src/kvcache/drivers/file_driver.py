"""
On-disk cache driver.

One file per key under the cache root:

    <root>/<h[0:2]>/<h[2:4]>/<h>.cache      where h = sha256(prepared key)

Hashing keeps filenames filesystem-safe whatever the key, and the two shard
levels keep directory fan-out bounded. Each file holds a JSON record:

    {"value": "<serialized payload>", "expires": <epoch s> | null, "created_at": <epoch s>}

Writes go to a uniquely named temp file in the same directory and are then
renamed over the target, so readers see either the old complete file, the
new complete file, or nothing. Corrupt or expired files are deleted when read.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from uuid6 import uuid7

from kvcache.drivers.base import BaseCacheDriver
from kvcache.exceptions import DriverError, SerializationError
from kvcache.logging import get_logger
from kvcache.types import Ttl

logger = get_logger(__name__)

CACHE_SUFFIX = ".cache"
TEMP_SUFFIX = ".tmp"

DEFAULT_FILE_PERMISSIONS = 0o644
DEFAULT_DIRECTORY_PERMISSIONS = 0o755


class FileDriver(BaseCacheDriver):
    """Filesystem-backed cache with atomic writes.

    Config keys (besides prefix/ttl):
        path: Cache root directory (default: <tempdir>/kvcache).
        file_permissions: Mode applied to cache files (default 0o644).
        directory_permissions: Mode for created directories (default 0o755).
    """

    name = "file"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        """Initialize the driver and make sure the root is usable.

        Raises:
            DriverError: If the root cannot be created or is not writable.
        """
        config = config or {}
        super().__init__(config)

        path = config.get("path")
        self.root = Path(path) if path else Path(tempfile.gettempdir()) / "kvcache"

        file_permissions = config.get("file_permissions")
        directory_permissions = config.get("directory_permissions")
        self.file_permissions = (
            DEFAULT_FILE_PERMISSIONS if file_permissions is None else file_permissions
        )
        self.directory_permissions = (
            DEFAULT_DIRECTORY_PERMISSIONS
            if directory_permissions is None
            else directory_permissions
        )

        try:
            self.root.mkdir(mode=self.directory_permissions, parents=True, exist_ok=True)
        except OSError as e:
            raise DriverError(
                self.name, "cannot create cache directory", context={"path": str(self.root)}
            ) from e

        if not os.access(self.root, os.W_OK | os.X_OK):
            raise DriverError(
                self.name, "cache directory is not writable", context={"path": str(self.root)}
            )

    def _file_path(self, prepared_key: str) -> Path:
        digest = hashlib.sha256(prepared_key.encode("utf-8")).hexdigest()
        return self.root / digest[:2] / digest[2:4] / f"{digest}{CACHE_SUFFIX}"

    def path_for(self, key: str) -> Path:
        """Get the file path a key is stored at."""
        return self._file_path(self.prepare_key(key))

    def _ensure_shard_dirs(self, directory: Path) -> None:
        """Create the root and both shard levels with the configured mode."""
        shard = directory.parent
        for d in (self.root, shard, directory):
            d.mkdir(mode=self.directory_permissions, exist_ok=True)

    def _load_record(self, path: Path) -> dict[str, Any]:
        """Read and parse a record file.

        Raises:
            OSError: If the file cannot be read (FileNotFoundError on a miss).
            SerializationError: If the file is not a well-formed record.
        """
        record = self.deserialize_value(path.read_bytes())

        if not isinstance(record, dict) or not isinstance(record.get("value"), str):
            raise SerializationError("Malformed cache record", context={"path": str(path)})

        expires = record.get("expires")
        if expires is not None and (
            isinstance(expires, bool) or not isinstance(expires, (int, float))
        ):
            raise SerializationError("Malformed expiry in cache record", context={"path": str(path)})

        return record

    def _is_expired(self, record: Mapping[str, Any], now: int | None = None) -> bool:
        expires = record.get("expires")
        if expires is None:
            return False
        if now is None:
            now = int(self._now())
        return expires < now

    def _discard(self, path: Path, reason: str) -> None:
        """Best-effort removal of a file that should no longer be served."""
        try:
            path.unlink(missing_ok=True)
            logger.debug("Removed cache file", path=str(path), reason=reason)
        except OSError as e:
            logger.warning("Could not remove cache file", path=str(path), error=str(e))

    def _read_live_record(self, prepared_key: str) -> dict[str, Any] | None:
        """Load a record, deleting it when it is corrupt or expired."""
        path = self._file_path(prepared_key)

        try:
            record = self._load_record(path)
        except FileNotFoundError:
            return None
        except SerializationError:
            self._discard(path, "corrupt")
            return None
        except OSError as e:
            logger.warning("Could not read cache file", path=str(path), error=str(e))
            return None

        if self._is_expired(record):
            self._discard(path, "expired")
            return None

        return record

    def get(self, key: str, default: Any = None) -> Any:
        prepared_key = self.prepare_key(key)

        record = self._read_live_record(prepared_key)
        if record is None:
            return default

        try:
            return self.deserialize_value(record["value"])
        except SerializationError:
            self._discard(self._file_path(prepared_key), "corrupt")
            return default

    def set(self, key: str, value: Any, ttl: Ttl = None) -> bool:
        prepared_key = self.prepare_key(key)

        try:
            serialized = self.serialize_value(value)
        except SerializationError as e:
            logger.warning("Refusing to cache value", key=prepared_key, error=str(e))
            return False

        now = int(self._now())
        seconds = self.resolve_ttl(ttl)
        payload = self.serialize_value(
            {
                "value": serialized.decode("utf-8"),
                "expires": now + seconds if seconds is not None else None,
                "created_at": now,
            }
        )

        path = self._file_path(prepared_key)
        temp_path = path.with_name(f"{path.name}.{uuid7().hex}{TEMP_SUFFIX}")

        try:
            self._ensure_shard_dirs(path.parent)
            with open(temp_path, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except OSError as e:
            logger.warning("Cache write failed", key=prepared_key, error=str(e))
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Could not remove temp file", path=str(temp_path))
            return False

        try:
            os.chmod(path, self.file_permissions)
        except OSError as e:
            logger.warning("Could not set cache file permissions", path=str(path), error=str(e))

        return True

    def delete(self, key: str) -> bool:
        path = self._file_path(self.prepare_key(key))

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not delete cache file", path=str(path), error=str(e))
            return False

        return True

    def has(self, key: str) -> bool:
        return self._read_live_record(self.prepare_key(key)) is not None

    def clear(self) -> bool:
        """Delete the whole cache tree, leaving an empty root behind."""
        try:
            if self.root.exists():
                shutil.rmtree(self.root)
            self.root.mkdir(mode=self.directory_permissions, parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Could not clear cache directory", path=str(self.root), error=str(e))
            return False

        return True

    def clean_expired(self) -> int:
        """Walk the cache tree and delete expired files.

        Complements the lazy cleanup done on read. Files that cannot be
        read or parsed are left alone.

        Returns:
            Number of files removed.
        """
        count = 0
        now = int(self._now())

        for path in self.root.rglob(f"*{CACHE_SUFFIX}"):
            if not path.is_file():
                continue

            try:
                record = self._load_record(path)
            except (OSError, SerializationError):
                continue

            if not self._is_expired(record, now):
                continue

            try:
                path.unlink()
            except OSError:
                continue
            count += 1

        if count:
            logger.debug("Cleaned expired cache files", count=count, path=str(self.root))
        return count
