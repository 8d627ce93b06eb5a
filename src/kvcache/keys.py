"""
Cache key validation.

Keys end up in file paths (FileDriver) and in shared key spaces (Redis), so
they are restricted to a safe character set and bounded length. Keys that look
like filesystem paths are rejected outright.
"""

from __future__ import annotations

import re
from typing import Any

from kvcache.exceptions import InvalidKeyError


class KeyValidator:
    """Validates and sanitizes cache keys.

    Grammar: ``[A-Za-z0-9_.-]{1,250}`` with no ``..``, ``/`` or ``\\``.
    """

    MIN_KEY_LENGTH = 1
    MAX_KEY_LENGTH = 250

    ALLOWED_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")
    DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")

    # Checked separately from the character class
    TRAVERSAL_SEQUENCES = ("..", "/", "\\")

    @classmethod
    def validate(cls, key: Any) -> None:
        """Validate a cache key.

        Args:
            key: Key to validate.

        Raises:
            InvalidKeyError: If the key breaks any rule.
        """
        if not isinstance(key, str):
            raise InvalidKeyError(key, f"key must be a string, got {type(key).__name__}")

        if key.strip() == "":
            raise InvalidKeyError(key, "key cannot be empty")

        if len(key) < cls.MIN_KEY_LENGTH:
            raise InvalidKeyError(key, "key is too short")

        if len(key) > cls.MAX_KEY_LENGTH:
            raise InvalidKeyError(
                key, f"key exceeds the maximum length of {cls.MAX_KEY_LENGTH} characters"
            )

        if not cls.ALLOWED_PATTERN.fullmatch(key):
            raise InvalidKeyError(
                key, "key contains disallowed characters (allowed: letters, digits, _, -, .)"
            )

        if any(seq in key for seq in cls.TRAVERSAL_SEQUENCES):
            raise InvalidKeyError(key, "key cannot contain relative path segments (.., /, \\)")

    @classmethod
    def is_valid(cls, key: Any) -> bool:
        """Check a key without raising."""
        try:
            cls.validate(key)
        except InvalidKeyError:
            return False
        return True

    @classmethod
    def sanitize(cls, key: str) -> str:
        """Clean up a key so it only contains allowed characters.

        Trims surrounding whitespace, replaces every disallowed character
        with ``_`` and truncates to the maximum length. Never raises; the
        result may still fail validation (e.g. empty, or containing ``..``).
        """
        key = cls.DISALLOWED_CHARS.sub("_", key.strip())
        return key[: cls.MAX_KEY_LENGTH]
