"""
Tool system: definitions, registry, executor and built-in tools.
"""

from .builtin import BUILTIN_TOOLS
from .executor import CacheEntry, ExecutionRecord, ToolExecutor
from .registry import ParameterSpec, ToolDefinition, ToolHandler, ToolRegistry
from .validation import validate_parameters

__all__ = [
    "BUILTIN_TOOLS",
    "CacheEntry",
    "ExecutionRecord",
    "ParameterSpec",
    "ToolDefinition",
    "ToolExecutor",
    "ToolHandler",
    "ToolRegistry",
    "validate_parameters",
]
