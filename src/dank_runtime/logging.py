"""
Structured Logging for dank-runtime.

This module provides:
- Structured JSON logging with consistent fields
- Tool execution logging with trace correlation
- Log level filtering and formatting options
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

# =============================================================================
# Log Record Types
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    trace_id: str | None = None
    agent_id: str | None = None
    agent_name: str | None = None
    plugin: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            trace_id=kwargs.get("trace_id", self.trace_id),
            agent_id=kwargs.get("agent_id", self.agent_id),
            agent_name=kwargs.get("agent_name", self.agent_name),
            plugin=kwargs.get("plugin", self.plugin),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class ToolExecutionLog:
    """Log record for a tool execution."""

    execution_id: str
    tool_name: str

    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    duration_ms: float | None = None
    attempts: int = 1

    success: bool = True
    error: str | None = None
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured JSON output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("dank_runtime.tools")

        with logger.trace_context(agent_name="support-bot"):
            logger.log_tool_execution(ToolExecutionLog(...))
        ```
    """

    def __init__(
        self,
        name: str = "dank_runtime",
        level: str | None = "INFO",
        json_output: bool | None = True,
        include_timestamp: bool = True,
        attach_handler: bool = True,
    ):
        self.name = name
        self._json_output = json_output
        self.include_timestamp = include_timestamp

        self._logger = logging.getLogger(name)
        if level is not None:
            self._logger.setLevel(getattr(logging, level.upper()))

        self._context: LogContext = LogContext()

        # Child loggers propagate to the configured package logger
        if attach_handler and not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            if self.json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(TextFormatter(include_timestamp=include_timestamp))
            self._logger.addHandler(handler)

    @property
    def json_output(self) -> bool:
        if self._json_output is None:
            return _default_json_output
        return self._json_output

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def context(self) -> LogContext:
        return self._context

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context = self._context.with_update(**kwargs)

    @contextmanager
    def trace_context(
        self,
        trace_id: str | None = None,
        **kwargs,
    ) -> Iterator[str]:
        """
        Context manager for trace correlation.

        Args:
            trace_id: Trace ID (auto-generated if not provided)
            **kwargs: Additional context fields

        Yields:
            The trace ID
        """
        trace_id = trace_id or generate_trace_id()
        old_context = self._context

        try:
            self._context = old_context.with_update(trace_id=trace_id, **kwargs)
            yield trace_id
        finally:
            self._context = old_context

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        record_data = {
            "message": message,
            **self._context.to_dict(),
        }

        if event_type:
            record_data["event_type"] = event_type

        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}".rstrip())

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    def log_tool_execution(self, record: ToolExecutionLog) -> None:
        """Log a tool execution."""
        level = logging.INFO if record.success else logging.WARNING
        message = f"Tool '{record.tool_name}' executed"
        if record.duration_ms is not None:
            message += f" ({record.duration_ms:.0f}ms)"
        self._log(level, message, event_type="tool_execution", data=record.to_dict())

    def log_cache_hit(self, cache_key: str) -> None:
        self._log(
            logging.DEBUG,
            f"Cache hit: {cache_key}",
            event_type="cache_hit",
            data={"cache_key": cache_key},
        )

    def log_cache_miss(self, cache_key: str) -> None:
        self._log(
            logging.DEBUG,
            f"Cache miss: {cache_key}",
            event_type="cache_miss",
            data={"cache_key": cache_key},
        )

    def log_error(
        self,
        error: BaseException,
        message: str | None = None,
        **kwargs,
    ) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }

        # Runtime errors carry code/retryable/context
        if hasattr(error, "code") and hasattr(error.code, "value"):
            error_data["error_code"] = str(error.code.value)
        if hasattr(error, "retryable"):
            error_data["retryable"] = error.retryable
        if getattr(error, "context", None) is not None and hasattr(error.context, "to_dict"):
            error_data["error_context"] = error.context.to_dict()

        self._log(
            logging.ERROR,
            message or f"Error: {error}",
            event_type="error",
            data=error_data,
        )


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        line = f"{color}{record.levelname:8}{reset} {record.getMessage()}"
        if self.include_timestamp:
            timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
            line = f"{timestamp} {line}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Utilities
# =============================================================================


def generate_trace_id() -> str:
    """Generate a unique trace ID."""
    return f"trace_{uuid.uuid4().hex[:16]}"


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_loggers: dict[str, StructuredLogger] = {}
_default_json_output = False


def get_logger(name: str = "dank_runtime") -> StructuredLogger:
    """Get or create a structured logger.

    Module loggers (``dank_runtime.tools.executor`` etc.) attach no handler of
    their own and follow the format chosen by ``configure_logging``.
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(
            name,
            level=None,
            json_output=None,
            attach_handler=False,
        )
    return _loggers[name]


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    name: str = "dank_runtime",
    **kwargs: Any,
) -> StructuredLogger:
    """Configure the package logger.

    Child loggers propagate to it, so this sets the level and format for the
    whole runtime.
    """
    global _default_json_output
    _default_json_output = json_output

    base = logging.getLogger(name)
    for handler in list(base.handlers):
        base.removeHandler(handler)

    logger = StructuredLogger(
        name=name,
        level=level,
        json_output=json_output,
        **kwargs,
    )
    _loggers[name] = logger
    return logger


__all__ = [
    "LogContext",
    "ToolExecutionLog",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "Timer",
    "timed",
    "generate_trace_id",
    "truncate_for_log",
    "get_logger",
    "configure_logging",
]
