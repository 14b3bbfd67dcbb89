"""
Event dispatch: pattern matching, the handler bus and plugin routing.
"""

from .bus import EventBus, EventHandler
from .patterns import (
    PLUGIN_PREFIX,
    create_plugin_event,
    create_plugin_tool_event,
    create_tool_event,
    extract_plugin_name,
    matches_event_pattern,
    normalize_event_name,
    plugin_namespace,
)
from .router import EventRouter, RouteTarget

__all__ = [
    "EventBus",
    "EventHandler",
    "EventRouter",
    "RouteTarget",
    "PLUGIN_PREFIX",
    "matches_event_pattern",
    "normalize_event_name",
    "extract_plugin_name",
    "create_plugin_event",
    "create_tool_event",
    "create_plugin_tool_event",
    "plugin_namespace",
]
