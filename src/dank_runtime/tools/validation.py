"""
Validation for tool definitions and tool call parameters.

Uses jsonschema for both: definitions are checked against
``TOOL_DEFINITION_SCHEMA``; call parameters against a schema generated per
parameter from its ``ParameterSpec``. Only the first violation is reported.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import jsonschema
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError

from ..errors import ToolValidationError

if TYPE_CHECKING:
    from .registry import ToolDefinition

PARAMETER_TYPES = ("string", "number", "integer", "boolean", "array", "object")

PARAMETER_SPEC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "enum": list(PARAMETER_TYPES)},
        "description": {"type": "string"},
        "required": {"type": "boolean"},
        "default": {},
        "enum": {"type": "array"},
        "min": {"type": "number"},
        "max": {"type": "number"},
        "pattern": {"type": "string", "format": "regex"},
    },
    "required": ["type"],
    "additionalProperties": False,
}

TOOL_DEFINITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "description": {"type": "string", "minLength": 10, "maxLength": 500},
        "parameters": {"type": "object", "additionalProperties": PARAMETER_SPEC_SCHEMA},
        "handler": {},
        "category": {"type": "string", "minLength": 1},
        "version": {"type": "string"},
        "timeout": {"type": "number", "minimum": 1, "maximum": 300},
        "retries": {"type": "integer", "minimum": 0, "maximum": 5},
        "cacheable": {"type": "boolean"},
        "cache_ttl": {"type": "number", "minimum": 0},
        "metadata": {"type": "object"},
    },
    "required": ["description", "handler"],
    "additionalProperties": False,
}


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def error(cls, error: str) -> ValidationResult:
        return cls(valid=False, errors=[error])

    def __bool__(self) -> bool:
        return self.valid

    @property
    def first_error(self) -> str | None:
        return self.errors[0] if self.errors else None


def validate_against_schema(data: Any, schema: dict[str, Any]) -> ValidationResult:
    """Validate data against a JSON schema using jsonschema library."""
    try:
        jsonschema.validate(
            instance=data,
            schema=schema,
            format_checker=jsonschema.FormatChecker(),
        )
        return ValidationResult.ok()
    except JsonSchemaValidationError as e:
        path = ".".join(str(p) for p in e.path)
        if path:
            return ValidationResult.error(f"'{path}': {e.message}")
        return ValidationResult.error(e.message)


def parameter_json_schema(spec: Mapping[str, Any]) -> dict[str, Any]:
    """
    Translate one parameter spec into a JSON schema fragment.

    ``min``/``max`` bound the length of strings, the item count of arrays, the
    property count of objects and the value of numbers.
    """
    param_type = spec["type"]
    schema: dict[str, Any] = {"type": param_type}

    if spec.get("description"):
        schema["description"] = spec["description"]
    if spec.get("enum") is not None:
        schema["enum"] = list(spec["enum"])

    bounds = {
        "string": ("minLength", "maxLength"),
        "array": ("minItems", "maxItems"),
        "object": ("minProperties", "maxProperties"),
        "number": ("minimum", "maximum"),
        "integer": ("minimum", "maximum"),
    }.get(param_type)
    if bounds:
        lower, upper = bounds
        as_count = param_type in ("string", "array", "object")
        if spec.get("min") is not None:
            schema[lower] = int(spec["min"]) if as_count else spec["min"]
        if spec.get("max") is not None:
            schema[upper] = int(spec["max"]) if as_count else spec["max"]

    if param_type == "string" and spec.get("pattern"):
        schema["pattern"] = spec["pattern"]

    return schema


def validate_parameters(tool: ToolDefinition, params: Any) -> dict[str, Any]:
    """
    Check call parameters against the tool's parameter specs.

    Parameters are checked in declaration order. Keys without a spec are
    passed through untouched.

    Returns:
        A copy of ``params`` with spec defaults filled in for omitted keys

    Raises:
        ToolValidationError: On the first violation found
    """
    if not isinstance(params, Mapping):
        raise ToolValidationError(
            f"parameters must be an object, got {type(params).__name__}",
            tool_name=tool.name,
        )

    resolved = dict(params)
    for name, spec in tool.parameters.items():
        if name not in params:
            if spec.required:
                raise ToolValidationError(f"'{name}' is required", tool_name=tool.name)
            if spec.default is not None:
                resolved[name] = copy.deepcopy(spec.default)
            continue

        result = validate_against_schema(params[name], spec.json_schema)
        if not result:
            raise ToolValidationError(f"'{name}': {result.first_error}", tool_name=tool.name)

    return resolved


__all__ = [
    "PARAMETER_TYPES",
    "PARAMETER_SPEC_SCHEMA",
    "TOOL_DEFINITION_SCHEMA",
    "ValidationResult",
    "validate_against_schema",
    "parameter_json_schema",
    "validate_parameters",
]
