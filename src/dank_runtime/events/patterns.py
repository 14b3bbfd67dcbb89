"""
Event-name pattern matching and naming helpers.

Event names follow ``<namespace>:<subject>[:<action>[:<qualifier>]]``, e.g.
``tool:http-server:call:post`` or ``plugin:postgres:query``. A pattern is either
an exact name or contains ``*``, which matches any run of characters
(including ``:``), so ``tool:http-server:*`` matches every deeper sub-event.
"""

from __future__ import annotations

import re
from functools import lru_cache

PLUGIN_PREFIX = "plugin:"

_PLUGIN_NAME_RE = re.compile(r"^plugin:([^:]+):")


@lru_cache(maxsize=1024)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile(".*".join(parts), re.DOTALL)


def matches_event_pattern(event_name: str, pattern: str) -> bool:
    """
    Check whether ``event_name`` is routed to handlers registered for ``pattern``.

    Patterns without ``*`` require exact equality; ``:`` is always literal.
    """
    if event_name == pattern:
        return True
    if "*" not in pattern:
        return False
    return _compile_pattern(pattern).fullmatch(event_name) is not None


def normalize_event_name(event_name: str, plugin_name: str) -> str:
    """Prefix an event with ``plugin:<plugin_name>:`` unless it is already a plugin event."""
    if event_name.startswith(PLUGIN_PREFIX):
        return event_name
    return create_plugin_event(plugin_name, event_name)


def extract_plugin_name(event_name: str) -> str | None:
    """Return the plugin segment of a ``plugin:<name>:...`` event, if any."""
    match = _PLUGIN_NAME_RE.match(event_name)
    return match.group(1) if match else None


def create_plugin_event(plugin_name: str, event_name: str) -> str:
    return f"{PLUGIN_PREFIX}{plugin_name}:{event_name}"


def create_tool_event(tool_name: str, action: str) -> str:
    return f"tool:{tool_name}:{action}"


def create_plugin_tool_event(plugin_name: str, tool_name: str, action: str) -> str:
    return f"{PLUGIN_PREFIX}{plugin_name}:tool:{tool_name}:{action}"


def plugin_namespace(plugin_name: str) -> str:
    """The wildcard pattern covering every event a plugin owns."""
    return f"{PLUGIN_PREFIX}{plugin_name}:*"


__all__ = [
    "PLUGIN_PREFIX",
    "matches_event_pattern",
    "normalize_event_name",
    "extract_plugin_name",
    "create_plugin_event",
    "create_tool_event",
    "create_plugin_tool_event",
    "plugin_namespace",
]
