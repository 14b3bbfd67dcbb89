"""
Top-level package for the dank agent runtime.

Agents expose three mechanisms to their extensions: a pattern-matching event
bus, a validated tool executor with retry, timeout and caching, and a plugin
manager that wires plugins into both.
"""

from .agent import Agent
from .callbacks import CallbackRegistry, callback, default_callbacks
from .config import Settings, configure, get_settings
from .errors import (
    CircularDependencyError,
    DankRuntimeError,
    DependencyError,
    ErrorCode,
    HandlerError,
    InvalidPluginError,
    InvalidToolError,
    MissingDependencyError,
    NotFoundError,
    PluginError,
    PluginNotFoundError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
    ValidationError,
)
from .events import EventBus, EventRouter, matches_event_pattern
from .logging import configure_logging, get_logger
from .plugins import Plugin, PluginCapabilities, PluginManager, PluginRegistry, PluginStatus
from .tools import BUILTIN_TOOLS, ToolDefinition, ToolExecutor, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "CallbackRegistry",
    "callback",
    "default_callbacks",
    "Settings",
    "configure",
    "get_settings",
    "EventBus",
    "EventRouter",
    "matches_event_pattern",
    "ToolDefinition",
    "ToolRegistry",
    "ToolExecutor",
    "BUILTIN_TOOLS",
    "Plugin",
    "PluginCapabilities",
    "PluginManager",
    "PluginRegistry",
    "PluginStatus",
    "configure_logging",
    "get_logger",
    "ErrorCode",
    "DankRuntimeError",
    "ValidationError",
    "InvalidToolError",
    "ToolValidationError",
    "InvalidPluginError",
    "NotFoundError",
    "ToolNotFoundError",
    "PluginNotFoundError",
    "ToolTimeoutError",
    "DependencyError",
    "CircularDependencyError",
    "MissingDependencyError",
    "HandlerError",
    "PluginError",
    "__version__",
]
