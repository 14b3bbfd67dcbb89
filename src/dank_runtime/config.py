"""
Configuration system for dank-runtime.

This module provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading (``.env`` files via python-dotenv)
- YAML/TOML file loading
- Sensible defaults with override capability
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import jsonschema
from dotenv import find_dotenv, load_dotenv

from .config_schema import CONFIG_SCHEMA
from .errors import InvalidConfigError
from .logging import configure_logging

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]


@dataclass
class ToolDefaults:
    """Defaults applied to tool definitions that omit optional fields."""

    timeout: float = 30.0
    retries: int = 1
    cache_ttl: float = 0.0
    category: str = "general"
    version: str = "1.0.0"

    def __post_init__(self):
        if not (1 <= self.timeout <= 300):
            raise InvalidConfigError("tools.timeout must be between 1 and 300 seconds")
        if not (0 <= self.retries <= 5):
            raise InvalidConfigError("tools.retries must be between 0 and 5")
        if self.cache_ttl < 0:
            raise InvalidConfigError("tools.cache_ttl cannot be negative")


@dataclass
class ExecutorConfig:
    """Configuration for the tool executor."""

    history_limit: int = 1000
    backoff_base: float = 1.0

    # Sort parameter keys before building cache keys
    canonical_cache_keys: bool = False

    def __post_init__(self):
        if self.history_limit < 1:
            raise InvalidConfigError("executor.history_limit must be positive")
        if self.backoff_base < 0:
            raise InvalidConfigError("executor.backoff_base cannot be negative")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: LogLevel = "INFO"
    format: LogFormat = "text"
    include_timestamp: bool = True

    def __post_init__(self):
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise InvalidConfigError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.format not in valid_formats:
            raise InvalidConfigError(f"Invalid log format: {self.format}. Must be one of {valid_formats}")


@dataclass
class PluginsConfig:
    """Configuration for plugin discovery and loading."""

    entry_point_group: str = "dank_runtime.plugins"

    # When non-empty, load_from_path only accepts files inside these dirs
    plugin_dirs: list[Path] = field(default_factory=list)

    package_prefix: str = "dank-plugin-"
    autostart: bool = False

    def __post_init__(self):
        self.plugin_dirs = [Path(d) for d in self.plugin_dirs]


@dataclass
class AgentConfig:
    """Configuration for agents."""

    enable_builtin_tools: bool = True

    # name -> enabled; None registers every built-in tool
    builtin_tools: dict[str, bool] | None = None


@dataclass
class Settings:
    """
    Master configuration for the runtime.

    This aggregates all configuration sections into a single object
    that can be loaded from environment variables, files, or constructed
    programmatically.
    """

    tools: ToolDefaults = field(default_factory=ToolDefaults)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)

    @classmethod
    def from_env(cls, prefix: str = "DANK_", load_dotenv_file: bool = True) -> Settings:
        """
        Load settings from environment variables.

        Example:
            DANK_TOOL_TIMEOUT=60
            DANK_EXECUTOR_HISTORY_LIMIT=500
            DANK_LOG_LEVEL=DEBUG
            DANK_PLUGIN_DIRS=./plugins:/opt/dank/plugins
        """
        if load_dotenv_file:
            load_dotenv(find_dotenv(usecwd=True))

        data: dict[str, dict[str, Any]] = {
            "tools": {},
            "executor": {},
            "logging": {},
            "plugins": {},
            "agent": {},
        }

        try:
            if timeout := os.getenv(f"{prefix}TOOL_TIMEOUT"):
                data["tools"]["timeout"] = float(timeout)
            if retries := os.getenv(f"{prefix}TOOL_RETRIES"):
                data["tools"]["retries"] = int(retries)
            if cache_ttl := os.getenv(f"{prefix}TOOL_CACHE_TTL"):
                data["tools"]["cache_ttl"] = float(cache_ttl)

            if history_limit := os.getenv(f"{prefix}EXECUTOR_HISTORY_LIMIT"):
                data["executor"]["history_limit"] = int(history_limit)
            if backoff := os.getenv(f"{prefix}EXECUTOR_BACKOFF_BASE"):
                data["executor"]["backoff_base"] = float(backoff)
        except ValueError as e:
            raise InvalidConfigError(f"Invalid numeric environment setting: {e}") from e

        if canonical := os.getenv(f"{prefix}EXECUTOR_CANONICAL_CACHE_KEYS"):
            data["executor"]["canonical_cache_keys"] = canonical.lower() == "true"

        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            data["logging"]["level"] = level.upper()
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            data["logging"]["format"] = log_format.lower()

        if group := os.getenv(f"{prefix}PLUGIN_ENTRY_POINT_GROUP"):
            data["plugins"]["entry_point_group"] = group
        if dirs := os.getenv(f"{prefix}PLUGIN_DIRS"):
            data["plugins"]["plugin_dirs"] = [d for d in dirs.split(os.pathsep) if d]
        if autostart := os.getenv(f"{prefix}PLUGIN_AUTOSTART"):
            data["plugins"]["autostart"] = autostart.lower() == "true"

        if builtins := os.getenv(f"{prefix}ENABLE_BUILTIN_TOOLS"):
            data["agent"]["enable_builtin_tools"] = builtins.lower() == "true"

        return cls._from_dict({k: v for k, v in data.items() if v})

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            import yaml

            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            import tomllib

            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise InvalidConfigError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data)

    @classmethod
    def default(cls) -> Settings:
        return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The dictionary is validated against CONFIG_SCHEMA before any section
        is built.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            path = ".".join(str(p) for p in e.path)
            where = f" at '{path}'" if path else ""
            raise InvalidConfigError(f"Configuration validation failed{where}: {e.message}") from e

        return cls(
            tools=ToolDefaults(**data.get("tools", {})),
            executor=ExecutorConfig(**data.get("executor", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            plugins=PluginsConfig(**data.get("plugins", {})),
            agent=AgentConfig(**data.get("agent", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""

        def convert(obj):
            if isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [convert(v) for v in obj]
            if isinstance(obj, Path):
                return str(obj)
            return obj

        return convert(dataclasses.asdict(self))


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None) -> Settings:
    """
    Configure global settings and apply their logging section.

    Args:
        settings: Settings object to use globally (defaults when omitted)

    Returns:
        The configured Settings object
    """
    global _global_settings
    _global_settings = settings or Settings.default()

    log = _global_settings.logging
    configure_logging(
        level=log.level,
        json_output=log.format == "json",
        include_timestamp=log.include_timestamp,
    )
    return _global_settings


__all__ = [
    "ToolDefaults",
    "ExecutorConfig",
    "LoggingConfig",
    "PluginsConfig",
    "AgentConfig",
    "Settings",
    "get_settings",
    "configure",
]
