"""
Structured logging for kvcache.

Provides:
- Context variables for driver and operation (using contextvars)
- JSONFormatter for machine-readable logs to file
- RichHandler for pretty console output
- ContextLogger wrapper that attaches context to all log calls
- setup_logging() that configures both file and console handlers
- Context manager log_context() for scoped context
- get_logger() factory
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

# Context variables for structured logging
_driver_var: ContextVar[str | None] = ContextVar("driver", default=None)
_operation_var: ContextVar[str | None] = ContextVar("operation", default=None)


def get_driver() -> str | None:
    """Get the current driver name from context."""
    return _driver_var.get()


def get_operation() -> str | None:
    """Get the current operation from context."""
    return _operation_var.get()


@contextmanager
def log_context(
    driver: str | None = None,
    operation: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Args:
        driver: Driver name to set in context.
        operation: Operation name to set in context.

    Yields:
        None. Context variables are set for the duration of the context.
    """
    old_driver = _driver_var.get()
    old_operation = _operation_var.get()

    try:
        if driver is not None:
            _driver_var.set(driver)
        if operation is not None:
            _operation_var.set(operation)
        yield
    finally:
        _driver_var.set(old_driver)
        _operation_var.set(old_operation)


def _context_fields() -> dict[str, str]:
    fields: dict[str, str] = {}
    driver = get_driver()
    operation = get_operation()
    if driver:
        fields["driver"] = driver
    if operation:
        fields["operation"] = operation
    return fields


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable log files.

    Produces JSON Lines format with structured context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context_fields())

        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler that includes context in console output."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        """Override to add context prefix."""
        level_text = super().get_level_text(record)

        parts: list[str] = []
        driver = get_driver()
        operation = get_operation()

        if driver:
            parts.append(f"[cyan]{driver}[/cyan]")
        if operation:
            parts.append(f"[magenta]{operation}[/magenta]")

        if parts:
            prefix = " ".join(parts)
            return Text.from_markup(f"{level_text} {prefix}")

        return level_text


class ContextLogger:
    """Logger wrapper that automatically attaches context to log calls.

    Keyword arguments other than the standard logging ones are collected
    as structured fields, e.g. ``logger.debug("Evicted entry", key=key)``.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        """Get the logger name."""
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Internal logging method that adds context."""
        if not self._logger.isEnabledFor(level):
            return

        extra = kwargs.pop("extra", {})
        extra.update(_context_fields())

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


# Log output goes to stderr so it never mixes with CLI results on stdout
_console = Console(stderr=True)
_setup_done: bool = False


def setup_logging(
    log_level: str = "WARNING",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with JSON file handler and rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, only console logging is enabled.
        console_output: Whether to enable console output.
    """
    global _setup_done

    root_logger = logging.getLogger("kvcache")
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=_console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=True,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    # Prevent propagation to root logger
    root_logger.propagate = False

    for noisy_logger in ["redis", "urllib3"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapper around the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith("kvcache"):
        name = f"kvcache.{name}"

    return ContextLogger(logging.getLogger(name))
