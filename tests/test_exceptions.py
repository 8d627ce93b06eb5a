"""
Tests for the exception hierarchy.
"""

from __future__ import annotations

from kvcache.exceptions import (
    CacheError,
    ConfigurationError,
    DriverError,
    InvalidKeyError,
    SerializationError,
)


class TestCacheError:
    def test_str_includes_context(self) -> None:
        error = CacheError("Failed", context={"key": "k"})

        assert str(error) == "Failed (key='k')"
        assert repr(error) == "CacheError('Failed', context={'key': 'k'})"

    def test_str_without_context(self) -> None:
        assert str(CacheError("Failed")) == "Failed"

    def test_hierarchy(self) -> None:
        for cls in (InvalidKeyError, SerializationError, DriverError, ConfigurationError):
            assert issubclass(cls, CacheError)


class TestDriverError:
    def test_message_names_driver(self) -> None:
        error = DriverError("file", "cannot create cache directory", context={"path": "/x"})

        assert error.driver == "file"
        assert error.message == "Cache driver 'file' error: cannot create cache directory"
        assert error.context == {"driver": "file", "path": "/x"}

    def test_message_without_detail(self) -> None:
        assert DriverError("redis").message == "Cache driver 'redis' error"


class TestInvalidKeyError:
    def test_without_reason(self) -> None:
        error = InvalidKeyError("k")

        assert error.reason == ""
        assert error.context == {}
        assert str(error) == "Invalid cache key: 'k'"
