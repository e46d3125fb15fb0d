"""
Logging and error handling framework for db-migrator.

This module provides:
- Structured logging configuration
- Base exception classes
- Context-aware logging utilities
- Audit logging for migration commands
"""

import functools
import json
import logging
import sys
import traceback
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogContext(str, Enum):
    """Log context categories for structured logging."""

    RUNNER = "runner"
    REGISTRY = "registry"
    LEDGER = "ledger"
    LOCK = "lock"
    DATABASE = "database"
    CONFIG = "config"
    CLI = "cli"


class MigratorException(Exception):
    """Base exception class for all db-migrator errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)


class ConfigurationError(MigratorException):
    """Errors related to configuration and setup."""

    pass


class RegistryError(MigratorException):
    """Errors raised while registering or discovering migrations."""

    pass


class DatabaseError(MigratorException):
    """Errors related to database operations."""

    pass


class CommandError(MigratorException):
    """Errors related to command names and arguments."""

    pass


class ExecutionError(MigratorException):
    """Errors raised while a migration action runs."""

    pass


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "context"):
            log_data["context"] = record.context

        if hasattr(record, "version"):
            log_data["version"] = record.version

        if hasattr(record, "command"):
            log_data["command"] = record.command

        # Add all other extra fields from the record
        standard_fields = {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "getMessage",
            "context",
            "version",
            "command",
        }

        for key, value in record.__dict__.items():
            if key not in standard_fields and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ContextualLogger:
    """Logger with context management for structured logging."""

    def __init__(self, name: str, context: LogContext):
        self.logger = logging.getLogger(name)
        self.context = context.value
        self.version: int | None = None
        self.command: str | None = None

    def set_version(self, version: int | None) -> None:
        """Set the migration version for all subsequent log messages."""
        self.version = version

    def set_command(self, command: str | None) -> None:
        """Set the command name for all subsequent log messages."""
        self.command = command

    def _extra(self, extra_context: dict[str, Any] | None = None) -> dict[str, Any]:
        extra: dict[str, Any] = {"context": self.context}

        if self.version is not None:
            extra["version"] = self.version

        if self.command:
            extra["command"] = self.command

        if extra_context:
            extra.update(extra_context)

        return extra

    def _log(
        self, level: int, message: str, extra_context: dict[str, Any] | None = None
    ) -> None:
        """Internal logging method with context injection."""
        self.logger.log(level, message, extra=self._extra(extra_context))

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, exception: Exception | None = None, **kwargs) -> None:
        """Log error message with context and optional exception."""
        if exception:
            self.logger.error(message, exc_info=exception, extra=self._extra(kwargs))
        else:
            self._log(logging.ERROR, message, kwargs)


def get_logger(name: str, context: LogContext) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


def setup_logging(
    log_level: str | LogLevel = LogLevel.INFO,
    log_file: Path | None = None,
    enable_structured: bool = False,
    enable_console: bool = True,
) -> None:
    """
    Setup logging configuration.

    Console output goes to stderr so command output on stdout stays parseable.

    Args:
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_structured: Use JSON structured logging format
        enable_console: Enable console output
    """
    if isinstance(log_level, LogLevel):
        log_level = log_level.value

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    def make_formatter() -> logging.Formatter:
        if enable_structured:
            return StructuredFormatter()
        return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(make_formatter())
        handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(make_formatter())
        handlers.append(file_handler)

    root_logger = logging.getLogger()

    # Clear existing handlers first
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # SQLAlchemy echo has its own switch
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def audit_log(action: str, log_context: LogContext = LogContext.RUNNER):
    """Decorator for audit logging of state-changing commands."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(f"{func.__module__}.audit", log_context)
            logger.set_command(action)

            logger.info(f"Audit: {action} started", action=action)

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Audit: {action} failed",
                    action=action,
                    status="error",
                    error=str(e),
                )
                raise

            logger.info(
                f"Audit: {action} completed successfully",
                action=action,
                status="success",
            )
            return result

        return wrapper

    return decorator
