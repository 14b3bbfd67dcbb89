"""
Plugin system: capability interface, configuration, registry and manager.
"""

from .base import (
    AgentContext,
    Plugin,
    PluginCapabilities,
    PluginStatus,
    implements_capabilities,
)
from .config import SCHEMAS, get_schema, inject_env_vars, merge_schemas, validate_config
from .manager import PluginManager
from .registry import PluginRegistry

__all__ = [
    "AgentContext",
    "Plugin",
    "PluginCapabilities",
    "PluginStatus",
    "implements_capabilities",
    "PluginRegistry",
    "PluginManager",
    "SCHEMAS",
    "get_schema",
    "inject_env_vars",
    "merge_schemas",
    "validate_config",
]
