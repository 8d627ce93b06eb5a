"""
Configuration management using pydantic-settings.

Loads cache configuration from environment variables and .env files and
turns it into the per-driver config mappings the drivers are built from.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Cache settings loaded from environment variables.

    Common:
        CACHE_DRIVER: Name of the default driver (array, file, redis)
        CACHE_PREFIX: Prefix applied to every key (joined with ':')
        CACHE_TTL: Default time-to-live in seconds (unset = no expiry)

    File driver:
        CACHE_PATH: Root directory for cache files
        CACHE_FILE_PERMISSIONS: Mode for cache files (octal, e.g. 0644)
        CACHE_DIRECTORY_PERMISSIONS: Mode for cache directories (octal)

    Redis driver:
        REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DATABASE,
        REDIS_TIMEOUT, REDIS_CONNECT_ATTEMPTS
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CACHE_DRIVER: str = Field(default="array", description="Default cache driver name")
    CACHE_PREFIX: str = Field(default="", description="Key prefix for every driver")
    CACHE_TTL: int | None = Field(
        default=None, ge=0, description="Default TTL in seconds (None = no expiry)"
    )

    # File driver
    CACHE_PATH: Path = Field(
        default=Path(".cache/kvcache"), description="File cache root directory"
    )
    CACHE_FILE_PERMISSIONS: int = Field(default=0o644, description="Cache file mode")
    CACHE_DIRECTORY_PERMISSIONS: int = Field(
        default=0o755, description="Cache directory mode"
    )

    # Redis driver
    REDIS_HOST: str = Field(default="127.0.0.1", description="Redis host")
    REDIS_PORT: int = Field(default=6379, ge=1, le=65535, description="Redis port")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password")
    REDIS_DATABASE: int = Field(default=0, ge=0, description="Redis database index")
    REDIS_TIMEOUT: float = Field(default=2.0, gt=0.0, description="Socket timeout in seconds")
    REDIS_CONNECT_ATTEMPTS: int = Field(
        default=3, ge=1, le=10, description="Connection attempts at construction"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )

    @field_validator("CACHE_FILE_PERMISSIONS", "CACHE_DIRECTORY_PERMISSIONS", mode="before")
    @classmethod
    def parse_octal_mode(cls, v: Any) -> Any:
        """Read permission strings such as "0644" or "0o644" as octal."""
        if isinstance(v, str):
            value = v.strip().lower()
            if value.startswith("0o"):
                value = value[2:]
            try:
                return int(value, 8)
            except ValueError as e:
                raise ValueError(f"Permissions must be an octal mode, got {v!r}") from e
        return v

    @field_validator("CACHE_FILE_PERMISSIONS", "CACHE_DIRECTORY_PERMISSIONS")
    @classmethod
    def validate_mode_range(cls, v: int) -> int:
        """Ensure permission bits fit in a file mode."""
        if not 0 <= v <= 0o7777:
            raise ValueError(f"Permissions out of range: {oct(v)}")
        return v

    def driver_config(self, name: str) -> dict[str, Any]:
        """Build the config mapping passed to a driver factory.

        Unknown driver names only get the common keys (prefix, ttl), which
        lets third-party drivers registered on the manager share them.
        """
        config: dict[str, Any] = {"prefix": self.CACHE_PREFIX, "ttl": self.CACHE_TTL}

        if name == "file":
            config.update(
                path=self.CACHE_PATH,
                file_permissions=self.CACHE_FILE_PERMISSIONS,
                directory_permissions=self.CACHE_DIRECTORY_PERMISSIONS,
            )
        elif name == "redis":
            config.update(
                host=self.REDIS_HOST,
                port=self.REDIS_PORT,
                password=self.REDIS_PASSWORD,
                database=self.REDIS_DATABASE,
                timeout=self.REDIS_TIMEOUT,
                connect_attempts=self.REDIS_CONNECT_ATTEMPTS,
            )

        return config

    def manager_config(self) -> dict[str, Any]:
        """Build the config mapping for a CacheManager."""
        return {
            "default": self.CACHE_DRIVER,
            "drivers": {
                name: self.driver_config(name) for name in ("array", "file", "redis")
            },
        }

    def redacted_display(self) -> dict[str, str | int | float | None]:
        """Return settings with secrets redacted for display."""
        return {
            "CACHE_DRIVER": self.CACHE_DRIVER,
            "CACHE_PREFIX": self.CACHE_PREFIX,
            "CACHE_TTL": self.CACHE_TTL,
            "CACHE_PATH": str(self.CACHE_PATH),
            "CACHE_FILE_PERMISSIONS": oct(self.CACHE_FILE_PERMISSIONS),
            "CACHE_DIRECTORY_PERMISSIONS": oct(self.CACHE_DIRECTORY_PERMISSIONS),
            "REDIS_HOST": self.REDIS_HOST,
            "REDIS_PORT": self.REDIS_PORT,
            "REDIS_PASSWORD": "***" if self.REDIS_PASSWORD else None,
            "REDIS_DATABASE": self.REDIS_DATABASE,
            "REDIS_TIMEOUT": self.REDIS_TIMEOUT,
            "REDIS_CONNECT_ATTEMPTS": self.REDIS_CONNECT_ATTEMPTS,
            "LOG_LEVEL": self.LOG_LEVEL,
        }

    def ensure_directories(self) -> None:
        """Create the file cache root if it doesn't exist."""
        self.CACHE_PATH.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
