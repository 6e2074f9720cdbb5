"""Structured logging infrastructure for Warden.

Provides structured logging using structlog with Warden-specific context
such as session_id, instance_id and target_id. Supports console output,
JSON output and rotating file output.

Example usage:
    from warden.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("controller")

    # Log with auto-context
    logger.info("stop_requested", instance_id="a1b2c3")

    # Bind context for a scope
    ctx_logger = logger.bind(target_id="123")
    ctx_logger.debug("calling_endpoint")

    # Use an instance context for automatic correlation
    ctx = InstanceContext(session_id="alice", instance_id="a1b2c3")
    with with_context(ctx):
        logger.info("telemetry.polled")  # Includes session_id, instance_id
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Field names whose values are never written to logs
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})

_current_log_path: Path | None = None


def get_current_log_path() -> Path | None:
    """Get the currently configured log file path, if file logging is on."""
    return _current_log_path


@dataclass(frozen=True)
class InstanceContext:
    """Immutable context for correlating log entries of one session.

    Attributes:
        session_id: The user session the work belongs to.
        instance_id: The worker instance being acted on (None for
            session-wide work such as the watchdog sweep).
        target_id: Target id of the instance, when known.
        run_id: Unique id for one process run of the session.
    """

    session_id: str
    instance_id: str | None = None
    target_id: str | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def for_instance(self, instance_id: str, target_id: str | None = None) -> InstanceContext:
        """Create a new context scoped to one instance."""
        return replace(self, instance_id=instance_id, target_id=target_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging, skipping unset fields."""
        result: dict[str, Any] = {
            "session_id": self.session_id,
            "run_id": self.run_id,
        }
        if self.instance_id is not None:
            result["instance_id"] = self.instance_id
        if self.target_id is not None:
            result["target_id"] = self.target_id
        return result


# ContextVar keeps contexts isolated between concurrent asyncio tasks
_current_context: ContextVar[InstanceContext | None] = ContextVar(
    "warden_context", default=None
)


def get_current_context() -> InstanceContext | None:
    """Get the current InstanceContext if set."""
    return _current_context.get()


def set_context(ctx: InstanceContext) -> None:
    """Set the current InstanceContext.

    Generally prefer using `with_context()` for automatic cleanup.
    """
    _current_context.set(ctx)


def clear_context() -> None:
    """Clear the current InstanceContext."""
    _current_context.set(None)


@contextmanager
def with_context(ctx: InstanceContext) -> Iterator[InstanceContext]:
    """Context manager that sets InstanceContext for the duration of a block.

    Args:
        ctx: The InstanceContext to use for the block.

    Yields:
        The InstanceContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


@contextmanager
def instance_scope(instance_id: str, target_id: str | None = None) -> Iterator[None]:
    """Narrow the current session context to one instance, if one is set."""
    ctx = _current_context.get()
    if ctx is None:
        yield
        return
    with with_context(ctx.for_instance(instance_id, target_id)):
        yield


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields (one level deep)."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {
                k: _sanitize_value(k, v) for k, v in value.items()
            }
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds InstanceContext fields to log entries.

    Explicitly bound fields take precedence over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            if key not in event_dict:
                event_dict[key] = value
    return event_dict


class WardenLogger:
    """Warden-specific logger wrapper around structlog.

    The logger is bound to a component name and can carry additional
    context for a scope (e.g. instance_id). The underlying structlog
    logger is fetched lazily on every call so that loggers created at
    import time still respect a later `configure_logging()`.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> WardenLogger:
        """Create a new logger with additional bound context."""
        new_logger = WardenLogger.__new__(WardenLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def unbind(self, *keys: str) -> WardenLogger:
        """Create a new logger with the given keys removed."""
        new_logger = WardenLogger.__new__(WardenLogger)
        new_logger._component = self._component
        new_logger._context = {k: v for k, v in self._context.items() if k not in keys}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._get_logger().critical(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an error with traceback. Call from within an exception handler."""
        self._get_logger().exception(event, **kw)


def _build_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console", "both"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure Warden structured logging.

    Call once at application startup before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "json" for structured output, "console" for human-readable,
            "both" for console to stderr and a rotating file (requires file_path).
        file_path: Optional file path for log output. Required if format="both".
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_timestamps: Whether to include ISO8601 timestamps.
        include_context: Whether to include InstanceContext fields.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    global _current_log_path

    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        handlers.append(console_handler)

    if file_path is not None and format in ("json", "both", "console"):
        file_path.parent.mkdir(parents=True, exist_ok=True)
        _current_log_path = file_path
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        handlers.append(file_handler)
    elif format == "json":
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setLevel(log_level)
        handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=file_path is None)

    # cache_logger_on_first_use=False keeps import-time loggers in sync with
    # configuration applied later
    structlog.configure(
        processors=_build_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> WardenLogger:
    """Get a Warden logger for a component.

    Args:
        component: The component name (e.g., "controller", "telemetry.fetch").
        **initial_context: Additional context to bind.

    Returns:
        A WardenLogger instance bound to the component.
    """
    return WardenLogger(component, **initial_context)


__all__ = [
    "InstanceContext",
    "SENSITIVE_PATTERNS",
    "WardenLogger",
    "clear_context",
    "configure_logging",
    "get_current_context",
    "get_current_log_path",
    "get_logger",
    "instance_scope",
    "set_context",
    "with_context",
]
