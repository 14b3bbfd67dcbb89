"""
JSON schemas for configuration validation.
"""

TOOLS_SCHEMA = {
    "type": "object",
    "properties": {
        "timeout": {"type": "number", "minimum": 1, "maximum": 300},
        "retries": {"type": "integer", "minimum": 0, "maximum": 5},
        "cache_ttl": {"type": "number", "minimum": 0},
        "category": {"type": "string", "minLength": 1},
        "version": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

EXECUTOR_SCHEMA = {
    "type": "object",
    "properties": {
        "history_limit": {"type": "integer", "minimum": 1},
        "backoff_base": {"type": "number", "minimum": 0},
        "canonical_cache_keys": {"type": "boolean"},
    },
    "additionalProperties": False,
}

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
        "include_timestamp": {"type": "boolean"},
    },
    "additionalProperties": False,
}

PLUGINS_SCHEMA = {
    "type": "object",
    "properties": {
        "entry_point_group": {"type": "string", "minLength": 1},
        "plugin_dirs": {"type": "array", "items": {"type": "string"}},
        "package_prefix": {"type": "string"},
        "autostart": {"type": "boolean"},
    },
    "additionalProperties": False,
}

AGENT_SCHEMA = {
    "type": "object",
    "properties": {
        "enable_builtin_tools": {"type": "boolean"},
        "builtin_tools": {
            "type": ["object", "null"],
            "additionalProperties": {"type": "boolean"},
        },
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "tools": TOOLS_SCHEMA,
        "executor": EXECUTOR_SCHEMA,
        "logging": LOGGING_SCHEMA,
        "plugins": PLUGINS_SCHEMA,
        "agent": AGENT_SCHEMA,
    },
    "additionalProperties": False,
}
