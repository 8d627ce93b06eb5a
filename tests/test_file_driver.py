"""
Tests for the on-disk cache driver.
"""

from __future__ import annotations

import hashlib
import json
import stat
import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from kvcache.drivers.file_driver import FileDriver
from kvcache.exceptions import DriverError


@pytest.fixture
def clock(file_driver: FileDriver, monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Freeze the driver's clock; tests move it by editing clock[0]."""
    now = [1_700_000_000.0]
    monkeypatch.setattr(file_driver, "_now", lambda: now[0])
    return now


def _cache_files(root: Path) -> list[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file())


class TestLayout:
    """Tests for where and how entries are written."""

    def test_path_is_sharded_sha256(self, file_driver: FileDriver) -> None:
        """Test the <h[:2]>/<h[2:4]>/<h>.cache layout."""
        digest = hashlib.sha256(b"user_1").hexdigest()

        expected = file_driver.root / digest[:2] / digest[2:4] / f"{digest}.cache"
        assert file_driver.path_for("user_1") == expected

    def test_prefix_is_part_of_hash(self, temp_dir: Path) -> None:
        driver = FileDriver({"path": temp_dir, "prefix": "app"})
        digest = hashlib.sha256(b"app:user_1").hexdigest()

        assert driver.path_for("user_1").name == f"{digest}.cache"

    def test_set_writes_single_file(self, file_driver: FileDriver) -> None:
        file_driver.set("k", "v")

        assert _cache_files(file_driver.root) == [file_driver.path_for("k")]

    def test_record_format(self, file_driver: FileDriver, clock: list[float]) -> None:
        """Test the JSON record stored on disk."""
        file_driver.set("k", {"a": 1}, ttl=60)

        record = json.loads(file_driver.path_for("k").read_text())
        assert set(record) == {"value", "expires", "created_at"}
        assert json.loads(record["value"]) == {"a": 1}
        assert record["created_at"] == 1_700_000_000
        assert record["expires"] == 1_700_000_060

    def test_record_without_ttl(self, file_driver: FileDriver) -> None:
        file_driver.set("k", "v")

        record = json.loads(file_driver.path_for("k").read_text())
        assert record["expires"] is None

    def test_file_permissions_applied(self, temp_dir: Path) -> None:
        driver = FileDriver({"path": temp_dir / "c", "file_permissions": 0o600})
        driver.set("secret", "value")

        mode = stat.S_IMODE(driver.path_for("secret").stat().st_mode)
        assert mode == 0o600

    def test_default_root_under_tempdir(self, temp_dir: Path) -> None:
        """Test that a driver without a path uses the system temp dir."""
        with patch("kvcache.drivers.file_driver.tempfile.gettempdir", return_value=str(temp_dir)):
            driver = FileDriver()

        assert driver.root == temp_dir / "kvcache"
        assert driver.root.is_dir()

    def test_persists_across_instances(self, temp_dir: Path) -> None:
        """Test that a new driver on the same root reads earlier writes."""
        FileDriver({"path": temp_dir / "c"}).set("k", [1, 2])

        assert FileDriver({"path": temp_dir / "c"}).get("k") == [1, 2]


class TestConstruction:
    """Tests for driver setup failures."""

    def test_root_under_regular_file_fails(self, temp_dir: Path) -> None:
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("x")

        with pytest.raises(DriverError) as exc_info:
            FileDriver({"path": blocker / "cache"})

        assert exc_info.value.driver == "file"
        assert "cannot create" in str(exc_info.value)

    def test_unwritable_root_fails(self, temp_dir: Path) -> None:
        with patch("kvcache.drivers.file_driver.os.access", return_value=False):
            with pytest.raises(DriverError) as exc_info:
                FileDriver({"path": temp_dir / "c"})

        assert "not writable" in str(exc_info.value)


class TestExpiry:
    """Tests for TTL handling on disk."""

    def test_expired_file_deleted_on_get(
        self, file_driver: FileDriver, clock: list[float]
    ) -> None:
        file_driver.set("k", "v", ttl=10)
        path = file_driver.path_for("k")

        clock[0] += 10
        assert file_driver.get("k") == "v"

        clock[0] += 1
        assert file_driver.get("k", "gone") == "gone"
        assert not path.exists()

    def test_expired_file_deleted_on_has(
        self, file_driver: FileDriver, clock: list[float]
    ) -> None:
        file_driver.set("k", "v", ttl=1)
        clock[0] += 5

        assert file_driver.has("k") is False
        assert not file_driver.path_for("k").exists()

    def test_real_clock_expiry(self, file_driver: FileDriver) -> None:
        """Test expiry against wall-clock time (whole-second resolution)."""
        file_driver.set("short", "lived", ttl=1)
        assert file_driver.get("short") == "lived"

        time.sleep(2.1)

        assert file_driver.get("short") is None

    def test_default_ttl_from_config(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        driver = FileDriver({"path": temp_dir / "c", "ttl": 30})
        monkeypatch.setattr(driver, "_now", lambda: 1000.0)

        driver.set("k", "v")

        record = json.loads(driver.path_for("k").read_text())
        assert record["expires"] == 1030


class TestCorruption:
    """Tests for self-healing on unreadable files."""

    @pytest.mark.parametrize(
        "content",
        [
            b"{not json",
            b"",
            b'"just a string"',
            b'{"expires": null}',
            b'{"value": 5, "expires": null}',
            b'{"value": "1", "expires": "soon"}',
            b'{"value": "{broken", "expires": null}',
        ],
    )
    def test_corrupt_file_is_miss_and_removed(
        self, file_driver: FileDriver, content: bytes
    ) -> None:
        file_driver.set("k", "v")
        path = file_driver.path_for("k")
        path.write_bytes(content)

        assert file_driver.get("k", "default") == "default"
        assert not path.exists()

    def test_has_removes_corrupt_file(self, file_driver: FileDriver) -> None:
        file_driver.set("k", "v")
        path = file_driver.path_for("k")
        path.write_bytes(b"\x00garbage")

        assert file_driver.has("k") is False
        assert not path.exists()

    def test_set_after_corruption(self, file_driver: FileDriver) -> None:
        file_driver.set("k", "v")
        file_driver.path_for("k").write_bytes(b"garbage")

        assert file_driver.set("k", "fresh") is True
        assert file_driver.get("k") == "fresh"


class TestAtomicWrites:
    """Tests for the temp-file-and-rename write path."""

    def test_no_temp_files_left_after_set(self, file_driver: FileDriver) -> None:
        file_driver.set_multiple({f"k{i}": i for i in range(20)})

        assert not list(file_driver.root.rglob("*.tmp"))

    def test_failed_rename_keeps_old_value(self, file_driver: FileDriver) -> None:
        """Test that a crash before the rename leaves the old file intact."""
        file_driver.set("k", "old")

        with patch("kvcache.drivers.file_driver.os.replace", side_effect=OSError("disk full")):
            assert file_driver.set("k", "new") is False

        assert file_driver.get("k") == "old"
        assert not list(file_driver.root.rglob("*.tmp"))

    def test_failed_write_returns_false(self, file_driver: FileDriver) -> None:
        with patch(
            "kvcache.drivers.file_driver.open", side_effect=PermissionError("read-only"), create=True
        ):
            assert file_driver.set("k", "v") is False

        assert file_driver.has("k") is False

    def test_concurrent_readers_see_whole_values(self, file_driver: FileDriver) -> None:
        """Test that readers never observe a partially written file."""
        big_a = {"payload": "a" * 50_000}
        big_b = {"payload": "b" * 50_000}
        file_driver.set("shared", big_a)

        stop = threading.Event()
        seen: list[object] = []

        def writer() -> None:
            while not stop.is_set():
                file_driver.set("shared", big_a)
                file_driver.set("shared", big_b)

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            for _ in range(300):
                seen.append(file_driver.get("shared", "miss"))
        finally:
            stop.set()
            thread.join()

        assert all(value in (big_a, big_b) for value in seen)


class TestDeleteAndClear:
    """Tests for delete and clear."""

    def test_delete_removes_file(self, file_driver: FileDriver) -> None:
        file_driver.set("k", "v")
        path = file_driver.path_for("k")

        assert file_driver.delete("k") is True
        assert not path.exists()

    def test_clear_leaves_empty_root(self, file_driver: FileDriver) -> None:
        file_driver.set_multiple({"a": 1, "b": 2})

        assert file_driver.clear() is True
        assert file_driver.root.is_dir()
        assert list(file_driver.root.iterdir()) == []

    def test_clear_failure_returns_false(self, file_driver: FileDriver) -> None:
        file_driver.set("a", 1)

        with patch("kvcache.drivers.file_driver.shutil.rmtree", side_effect=OSError("busy")):
            assert file_driver.clear() is False


class TestCleanExpired:
    """Tests for FileDriver.clean_expired."""

    def test_removes_only_expired_files(
        self, file_driver: FileDriver, clock: list[float]
    ) -> None:
        file_driver.set("old1", 1, ttl=1)
        file_driver.set("old2", 2, ttl=1)
        file_driver.set("fresh", 3, ttl=3600)
        file_driver.set("forever", 4)
        clock[0] += 10

        assert file_driver.clean_expired() == 2
        assert file_driver.has("fresh")
        assert file_driver.has("forever")
        assert not file_driver.path_for("old1").exists()

    def test_skips_corrupt_files(self, file_driver: FileDriver, clock: list[float]) -> None:
        file_driver.set("broken", 1, ttl=1)
        file_driver.path_for("broken").write_bytes(b"garbage")
        clock[0] += 10

        assert file_driver.clean_expired() == 0
        assert file_driver.path_for("broken").exists()

    def test_empty_cache(self, file_driver: FileDriver) -> None:
        assert file_driver.clean_expired() == 0
