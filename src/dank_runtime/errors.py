"""
Error taxonomy for dank-runtime.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Retryable vs non-retryable classification
- Structured context for debugging

Propagation rules:
- ValidationError / NotFoundError / DependencyError surface synchronously to
  the caller of the API that triggered them.
- ToolTimeoutError is retried by the executor until the retry budget is spent.
- HandlerError is only ever built for logging; dispatch swallows it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for the runtime."""

    # Validation errors (2xxx)
    VALIDATION_ERROR = "ERR_2000"
    INVALID_TOOL = "ERR_2001"
    TOOL_VALIDATION_ERROR = "ERR_2002"
    INVALID_PLUGIN = "ERR_2003"
    PLUGIN_CONFIG_ERROR = "ERR_2004"

    # Lookup errors (3xxx)
    NOT_FOUND = "ERR_3000"
    TOOL_NOT_FOUND = "ERR_3001"
    PLUGIN_NOT_FOUND = "ERR_3002"

    # Tool errors (4xxx)
    TOOL_ERROR = "ERR_4000"
    TOOL_EXECUTION_ERROR = "ERR_4001"
    TOOL_TIMEOUT = "ERR_4002"

    # Plugin errors (5xxx)
    PLUGIN_ERROR = "ERR_5000"
    DEPENDENCY_ERROR = "ERR_5001"
    CIRCULAR_DEPENDENCY = "ERR_5002"
    MISSING_DEPENDENCY = "ERR_5003"
    PLUGIN_ALREADY_LOADED = "ERR_5004"

    # Event errors (6xxx)
    HANDLER_ERROR = "ERR_6000"

    # Configuration errors (7xxx)
    CONFIG_ERROR = "ERR_7000"
    INVALID_CONFIG = "ERR_7001"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    agent_id: str | None = None
    execution_id: str | None = None
    plugin: str | None = None
    event: str | None = None
    attempt: int = 1
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "execution_id": self.execution_id,
            "plugin": self.plugin,
            "event": self.event,
            "attempt": self.attempt,
            "operation": self.operation,
            **self.extra,
        }


class DankRuntimeError(Exception):
    """
    Base exception for all runtime errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        retryable: Whether the operation can be retried
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.execution_id:
            parts.append(f"(execution_id={self.context.execution_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(DankRuntimeError):
    """Base class for malformed tool, plugin or parameter definitions."""

    code = ErrorCode.VALIDATION_ERROR
    retryable = False

    def __init__(self, message: str, *, name: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.name = name


class InvalidToolError(ValidationError):
    """Tool definition is invalid."""

    code = ErrorCode.INVALID_TOOL

    def __init__(self, message: str, *, tool_name: str | None = None, **kwargs):
        if tool_name:
            message = f"Invalid tool definition for '{tool_name}': {message}"
        super().__init__(message, name=tool_name, **kwargs)
        self.tool_name = tool_name


class ToolValidationError(ValidationError):
    """Tool call parameters failed validation."""

    code = ErrorCode.TOOL_VALIDATION_ERROR

    def __init__(self, violation: str, *, tool_name: str | None = None, **kwargs):
        message = f"Invalid parameters for tool '{tool_name}': {violation}" if tool_name else violation
        super().__init__(message, name=tool_name, **kwargs)
        self.tool_name = tool_name
        self.violation = violation


class InvalidPluginError(ValidationError):
    """Loaded value does not implement the plugin capability set."""

    code = ErrorCode.INVALID_PLUGIN


class PluginConfigError(ValidationError):
    """Plugin configuration does not satisfy its schema."""

    code = ErrorCode.PLUGIN_CONFIG_ERROR


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(DankRuntimeError):
    """Base class for unknown tool or plugin names."""

    code = ErrorCode.NOT_FOUND
    retryable = False


class ToolNotFoundError(NotFoundError):
    """Requested tool is not registered."""

    code = ErrorCode.TOOL_NOT_FOUND

    def __init__(
        self,
        message: str = "Tool not found",
        *,
        tool_name: str | None = None,
        **kwargs,
    ):
        if tool_name:
            message = f"Tool '{tool_name}' not found"
        super().__init__(message, **kwargs)
        self.tool_name = tool_name


class PluginNotFoundError(NotFoundError):
    """Requested plugin is not registered or cannot be located."""

    code = ErrorCode.PLUGIN_NOT_FOUND

    def __init__(
        self,
        message: str = "Plugin not found",
        *,
        plugin_name: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.plugin_name = plugin_name


# =============================================================================
# Tool Errors
# =============================================================================


class ToolError(DankRuntimeError):
    """Base class for tool execution errors."""

    code = ErrorCode.TOOL_ERROR
    retryable = False


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    code = ErrorCode.TOOL_EXECUTION_ERROR

    def __init__(
        self,
        message: str = "Tool execution failed",
        *,
        tool_name: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    """Tool exceeded its timeout budget.

    The underlying work is not cancelled; only its late result is ignored.
    """

    code = ErrorCode.TOOL_TIMEOUT
    retryable = True

    def __init__(
        self,
        message: str = "Tool execution timed out",
        *,
        timeout: float | None = None,
        tool_name: str | None = None,
        **kwargs,
    ):
        if tool_name and timeout is not None:
            message = f"Tool '{tool_name}' execution timed out after {timeout}s"
        super().__init__(message, **kwargs)
        self.timeout = timeout
        self.tool_name = tool_name


# =============================================================================
# Plugin Errors
# =============================================================================


class PluginError(DankRuntimeError):
    """Base class for plugin lifecycle errors."""

    code = ErrorCode.PLUGIN_ERROR
    retryable = False


class PluginAlreadyLoadedError(PluginError):
    """A plugin with the same name is already held by the manager."""

    code = ErrorCode.PLUGIN_ALREADY_LOADED

    def __init__(self, plugin_name: str, **kwargs):
        super().__init__(f"Plugin '{plugin_name}' is already loaded", **kwargs)
        self.plugin_name = plugin_name


class DependencyError(PluginError):
    """Missing or cyclic plugin dependency."""

    code = ErrorCode.DEPENDENCY_ERROR

    def __init__(self, message: str, *, plugin_name: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.plugin_name = plugin_name


class CircularDependencyError(DependencyError):
    """Dependency graph contains a cycle."""

    code = ErrorCode.CIRCULAR_DEPENDENCY

    def __init__(self, plugin_name: str, **kwargs):
        super().__init__(
            f"Circular dependency detected involving plugin '{plugin_name}'",
            plugin_name=plugin_name,
            **kwargs,
        )


class MissingDependencyError(DependencyError):
    """A declared dependency is not registered."""

    code = ErrorCode.MISSING_DEPENDENCY

    def __init__(self, plugin_name: str, dependency: str, **kwargs):
        super().__init__(
            f"Plugin '{plugin_name}' depends on '{dependency}' which is not registered",
            plugin_name=plugin_name,
            **kwargs,
        )
        self.dependency = dependency


# =============================================================================
# Event Errors
# =============================================================================


class HandlerError(DankRuntimeError):
    """An exception raised inside a registered event handler."""

    code = ErrorCode.HANDLER_ERROR

    def __init__(self, event_name: str, cause: BaseException, **kwargs):
        super().__init__(
            f"Error in event handler for '{event_name}': {cause}",
            context=ErrorContext(event=event_name),
            cause=cause if isinstance(cause, Exception) else None,
            **kwargs,
        )
        self.event_name = event_name


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(DankRuntimeError):
    """Base class for configuration errors."""

    code = ErrorCode.CONFIG_ERROR
    retryable = False


class InvalidConfigError(ConfigError):
    """Configuration is invalid."""

    code = ErrorCode.INVALID_CONFIG


def is_retryable(error: Exception) -> bool:
    """
    Check if an error is retryable.

    Args:
        error: Exception to check

    Returns:
        True if the error is retryable
    """
    if isinstance(error, DankRuntimeError):
        return error.retryable

    retryable_types = (
        asyncio.TimeoutError,
        ConnectionError,
        TimeoutError,
    )
    return isinstance(error, retryable_types)


__all__ = [
    # Base
    "ErrorCode",
    "ErrorContext",
    "DankRuntimeError",
    # Validation errors
    "ValidationError",
    "InvalidToolError",
    "ToolValidationError",
    "InvalidPluginError",
    "PluginConfigError",
    # Lookup errors
    "NotFoundError",
    "ToolNotFoundError",
    "PluginNotFoundError",
    # Tool errors
    "ToolError",
    "ToolExecutionError",
    "ToolTimeoutError",
    # Plugin errors
    "PluginError",
    "PluginAlreadyLoadedError",
    "DependencyError",
    "CircularDependencyError",
    "MissingDependencyError",
    # Event errors
    "HandlerError",
    # Config errors
    "ConfigError",
    "InvalidConfigError",
    # Utilities
    "is_retryable",
]
