"""
Plugin configuration: environment interpolation and schema validation.

String values may reference the process environment as ``${VAR}`` or
``${VAR:default}``. A placeholder whose variable is unset and that has no
default is left as written.
"""

from __future__ import annotations

import copy
import os
import re
from collections.abc import Mapping
from typing import Any

from jsonschema import Draft202012Validator

from ..errors import PluginConfigError

_ENV_VAR_RE = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")


def _replace_env_vars(value: str, environ: Mapping[str, str]) -> str:
    def substitute(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        if name in environ:
            return environ[name]
        if default is not None:
            return default
        return match.group(0)

    return _ENV_VAR_RE.sub(substitute, value)


def inject_env_vars(config: Any, environ: Mapping[str, str] | None = None) -> Any:
    """
    Return a copy of ``config`` with environment placeholders resolved.

    Mappings and lists are walked recursively; non-string leaves are returned
    unchanged.
    """
    env = os.environ if environ is None else environ
    if isinstance(config, str):
        return _replace_env_vars(config, env)
    if isinstance(config, Mapping):
        return {key: inject_env_vars(value, env) for key, value in config.items()}
    if isinstance(config, (list, tuple)):
        return [inject_env_vars(item, env) for item in config]
    return config


def validate_config(name: str, config: Mapping[str, Any] | None, schema: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Validate a plugin configuration.

    Keys not declared in the schema's ``properties`` are dropped and
    top-level defaults are filled in before validating. Every violation is
    reported in one error.

    Raises:
        PluginConfigError: If the configuration does not satisfy the schema
    """
    result = dict(config or {})
    if schema is None:
        return result

    properties = schema.get("properties", {})
    if properties:
        result = {key: value for key, value in result.items() if key in properties}
    for key, prop in properties.items():
        if key not in result and isinstance(prop, Mapping) and "default" in prop:
            result[key] = copy.deepcopy(prop["default"])

    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(result), key=lambda e: [str(p) for p in e.path])
    if errors:
        details = ", ".join(_describe(e) for e in errors)
        raise PluginConfigError(f"Invalid configuration for plugin '{name}': {details}", name=name)

    return result


def _describe(error: Any) -> str:
    path = ".".join(str(p) for p in error.path)
    return f"'{path}' {error.message}" if path else error.message


SCHEMAS: dict[str, dict[str, Any]] = {
    "database": {
        "type": "object",
        "properties": {
            "connection_string": {"type": "string"},
            "host": {"type": "string"},
            "port": {"type": "integer"},
            "database": {"type": "string"},
            "username": {"type": "string"},
            "password": {"type": "string"},
            "pool_size": {"type": "integer", "minimum": 1, "maximum": 100, "default": 10},
            "timeout": {"type": "number", "minimum": 1, "default": 30},
            "ssl": {"type": "boolean", "default": False},
        },
        "anyOf": [{"required": ["connection_string"]}, {"required": ["host"]}],
    },
    "api_key": {
        "type": "object",
        "properties": {
            "api_key": {"type": "string"},
            "base_url": {"type": "string", "pattern": "^https?://"},
            "timeout": {"type": "number", "minimum": 1, "default": 30},
            "retries": {"type": "integer", "minimum": 0, "maximum": 5, "default": 2},
        },
        "required": ["api_key"],
    },
    "vector_db": {
        "type": "object",
        "properties": {
            "api_key": {"type": "string"},
            "environment": {"type": "string"},
            "index": {"type": "string"},
            "dimension": {"type": "integer", "minimum": 1},
            "timeout": {"type": "number", "minimum": 1, "default": 30},
        },
        "required": ["api_key"],
    },
    "file_storage": {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "max_size": {"type": "integer", "minimum": 0},
            "allowed_extensions": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["path"],
    },
    "redis": {
        "type": "object",
        "properties": {
            "host": {"type": "string", "default": "localhost"},
            "port": {"type": "integer", "minimum": 1, "maximum": 65535, "default": 6379},
            "password": {"type": "string"},
            "db": {"type": "integer", "minimum": 0, "default": 0},
            "key_prefix": {"type": "string"},
        },
    },
}


def get_schema(name: str) -> dict[str, Any] | None:
    return SCHEMAS.get(name)


def merge_schemas(*schemas: Mapping[str, Any]) -> dict[str, Any]:
    """Combine object schemas: properties are unioned and requirements accumulate."""
    merged: dict[str, Any] = {"type": "object", "properties": {}}
    required: list[str] = []
    all_of: list[Any] = []
    for schema in schemas:
        merged["properties"].update(schema.get("properties", {}))
        required.extend(r for r in schema.get("required", []) if r not in required)
        if "anyOf" in schema:
            all_of.append({"anyOf": schema["anyOf"]})
    if required:
        merged["required"] = required
    if all_of:
        merged["allOf"] = all_of
    return merged


__all__ = [
    "SCHEMAS",
    "inject_env_vars",
    "validate_config",
    "get_schema",
    "merge_schemas",
]
