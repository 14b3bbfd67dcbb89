"""
Tool definitions and the tool registry.

This module provides:
- ParameterSpec for describing one named tool parameter
- ToolDefinition, the validated and immutable form of a registered tool
- ToolRegistry for registration, lookup and function-calling schema export
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any

from ..config import ToolDefaults
from ..errors import InvalidToolError
from ..logging import get_logger
from .validation import TOOL_DEFINITION_SCHEMA, parameter_json_schema, validate_against_schema

logger = get_logger(__name__)

ToolHandler = Callable[..., Any]


@dataclass(frozen=True)
class ParameterSpec:
    """
    One named parameter of a tool.

    Attributes:
        type: One of string, number, integer, boolean, array, object
        description: Shown to the model in function-calling schemas
        required: Whether callers must supply the parameter
        default: Value filled in when the parameter is omitted
        enum: Allowed values
        min: Lower bound (length, item count or value depending on type)
        max: Upper bound (length, item count or value depending on type)
        pattern: Regular expression a string value must match
    """

    type: str
    description: str | None = None
    required: bool = False
    default: Any = None
    enum: tuple[Any, ...] | None = None
    min: float | None = None
    max: float | None = None
    pattern: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ParameterSpec:
        enum = data.get("enum")
        return cls(
            type=data["type"],
            description=data.get("description"),
            required=bool(data.get("required", False)),
            default=data.get("default"),
            enum=tuple(enum) if enum is not None else None,
            min=data.get("min"),
            max=data.get("max"),
            pattern=data.get("pattern"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "required": self.required}
        for key in ("description", "default", "min", "max", "pattern"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.enum is not None:
            data["enum"] = list(self.enum)
        return data

    @cached_property
    def json_schema(self) -> dict[str, Any]:
        return parameter_json_schema(self.to_dict())


@dataclass(frozen=True)
class ToolDefinition:
    """
    A registered tool.

    Instances are produced by ``ToolRegistry.register`` and never change
    afterwards. ``timeout`` and ``cache_ttl`` are in seconds.
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    category: str = "general"
    version: str = "1.0.0"
    timeout: float = 30.0
    retries: int = 1
    cacheable: bool = False
    cache_ttl: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    registered_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def required_parameters(self) -> list[str]:
        return [name for name, spec in self.parameters.items() if spec.required]

    @property
    def cache_enabled(self) -> bool:
        return self.cacheable and self.cache_ttl > 0

    @cached_property
    def accepts_context(self) -> bool:
        """Whether the handler takes a second positional argument for the call context."""
        try:
            signature = inspect.signature(self.handler)
        except (TypeError, ValueError):
            return True

        positional = 0
        for param in signature.parameters.values():
            if param.kind is inspect.Parameter.VAR_POSITIONAL:
                return True
            if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
                positional += 1
        return positional >= 2

    def definition_dict(self) -> dict[str, Any]:
        """The definition in the mapping form ``ToolRegistry.register`` accepts."""
        return {
            "description": self.description,
            "parameters": {name: spec.to_dict() for name, spec in self.parameters.items()},
            "handler": self.handler,
            "category": self.category,
            "version": self.version,
            "timeout": self.timeout,
            "retries": self.retries,
            "cacheable": self.cacheable,
            "cache_ttl": self.cache_ttl,
            "metadata": dict(self.metadata),
        }

    def to_function_schema(self) -> dict[str, Any]:
        """Provider-agnostic function-calling schema for this tool."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {name: dict(spec.json_schema) for name, spec in self.parameters.items()},
                "required": self.required_parameters,
            },
        }

    def to_openai_format(self) -> dict[str, Any]:
        return {"type": "function", "function": self.to_function_schema()}

    def to_dict(self) -> dict[str, Any]:
        """Serializable description of the tool (the handler is omitted)."""
        data = self.definition_dict()
        del data["handler"]
        data.update(name=self.name, id=self.id, registered_at=self.registered_at)
        return data


class ToolRegistry:
    """
    Registry of validated tool definitions.

    Example:
        ```python
        registry = ToolRegistry()
        registry.register("echo", {
            "description": "Echo the given text back",
            "parameters": {"text": {"type": "string", "required": True}},
            "handler": lambda params: params["text"],
        })

        tools = registry.to_function_schema()
        ```
    """

    def __init__(self, defaults: ToolDefaults | None = None) -> None:
        self.defaults = defaults or ToolDefaults()
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        definition: Mapping[str, Any] | ToolDefinition,
        *,
        replace: bool = False,
    ) -> ToolRegistry:
        """
        Validate and store a tool.

        Nothing is stored unless the whole definition is valid.

        Args:
            name: Unique tool name
            definition: Mapping with description, parameters, handler and
                optional policy fields, or an existing ToolDefinition
            replace: Overwrite an existing tool of the same name instead of
                rejecting it

        Returns:
            Self for chaining

        Raises:
            InvalidToolError: If the definition is invalid or the name is taken
        """
        tool = self._build(name, definition)

        if name in self._tools and not replace:
            raise InvalidToolError("a tool with this name is already registered", tool_name=name)

        self._tools[name] = tool
        logger.debug(f"Registered tool '{name}'", tool=name, category=tool.category)
        return self

    def _build(self, name: str, definition: Mapping[str, Any] | ToolDefinition) -> ToolDefinition:
        if not isinstance(name, str) or not name.strip():
            raise InvalidToolError("tool name must be a non-empty string", tool_name=str(name))

        if isinstance(definition, ToolDefinition):
            data = definition.definition_dict()
        elif isinstance(definition, Mapping):
            data = dict(definition)
        else:
            raise InvalidToolError("definition must be a mapping", tool_name=name)

        raw_params = data.get("parameters")
        if isinstance(raw_params, Mapping):
            data["parameters"] = {
                key: spec.to_dict() if isinstance(spec, ParameterSpec) else spec
                for key, spec in raw_params.items()
            }

        result = validate_against_schema(data, TOOL_DEFINITION_SCHEMA)
        if not result:
            raise InvalidToolError(result.first_error or "invalid definition", tool_name=name)

        if not callable(data["handler"]):
            raise InvalidToolError("'handler' must be callable", tool_name=name)

        d = self.defaults
        return ToolDefinition(
            name=name,
            description=data["description"],
            handler=data["handler"],
            parameters={key: ParameterSpec.from_dict(spec) for key, spec in data.get("parameters", {}).items()},
            category=data.get("category", d.category),
            version=data.get("version", d.version),
            timeout=float(data.get("timeout", d.timeout)),
            retries=int(data.get("retries", d.retries)),
            cacheable=data.get("cacheable", False),
            cache_ttl=float(data.get("cache_ttl", d.cache_ttl)),
            metadata=dict(data.get("metadata", {})),
        )

    def unregister(self, name: str) -> bool:
        """
        Remove a tool from the registry.

        Returns:
            True if tool was removed, False if not found
        """
        if name in self._tools:
            del self._tools[name]
            return True
        return False

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_all(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get_by_category(self, category: str) -> list[ToolDefinition]:
        return [tool for tool in self._tools.values() if tool.category == category]

    @property
    def names(self) -> list[str]:
        return list(self._tools.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def to_function_schema(self) -> list[dict[str, Any]]:
        """Project every tool into ``{name, description, parameters}`` form."""
        return [tool.to_function_schema() for tool in self._tools.values()]

    def to_openai_schema(self) -> list[dict[str, Any]]:
        """Function schemas wrapped as OpenAI ``tools`` entries."""
        return [tool.to_openai_format() for tool in self._tools.values()]


__all__ = [
    "ParameterSpec",
    "ToolDefinition",
    "ToolHandler",
    "ToolRegistry",
]
