"""
Plugin registry: discovery, loading, instantiation and dependency ordering.
"""

from __future__ import annotations

import importlib
import importlib.util
import inspect
import logging
import sys
from collections.abc import Iterable, Mapping
from importlib import metadata
from pathlib import Path
from types import ModuleType
from typing import Any

from ..config import PluginsConfig
from ..errors import (
    CircularDependencyError,
    InvalidPluginError,
    MissingDependencyError,
    PluginNotFoundError,
)
from .base import CAPABILITY_METHODS, Plugin, PluginCapabilities, PluginFactory, implements_capabilities
from .config import inject_env_vars

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Registry of plugin implementations and their live instances.

    The registry:
    - Registers plugin classes with their declared dependencies
    - Loads plugin classes from installed packages or local ``.py`` files
    - Creates instances with environment-interpolated configuration
    - Orders plugins so dependencies come before their dependents
    """

    def __init__(self, config: PluginsConfig | None = None):
        self.config = config or PluginsConfig()
        self._classes: dict[str, PluginFactory] = {}  # name -> implementation
        self._instances: dict[str, PluginCapabilities] = {}  # name -> live instance
        self._dependencies: dict[str, list[str]] = {}  # name -> dependency names
        self._sources: dict[str, str] = {}  # name -> where it was loaded from

    def register(
        self,
        name: str,
        plugin_class: PluginFactory,
        *,
        dependencies: Iterable[str] | None = None,
    ) -> PluginRegistry:
        """Register a plugin implementation.

        Args:
            name: Name the plugin is created and resolved under
            plugin_class: Class (or factory) whose instances implement the
                plugin capability set
            dependencies: Names of plugins this one needs; defaults to the
                class's ``dependencies`` attribute

        Returns:
            Self for chaining
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidPluginError("Plugin name must be a non-empty string")
        if not callable(plugin_class) or not implements_capabilities(plugin_class):
            raise InvalidPluginError(
                f"Plugin '{name}' must implement {', '.join(CAPABILITY_METHODS)}",
                name=name,
            )

        if dependencies is None:
            dependencies = getattr(plugin_class, "dependencies", None) or ()

        self._classes[name] = plugin_class
        self._dependencies[name] = list(dependencies)
        self._sources.setdefault(name, "registered")

        logger.info(f"Registered plugin: {name}")
        return self

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_from_package(self, package_name: str, *, name: str | None = None) -> tuple[str, PluginFactory]:
        """Load a plugin class from an installed distribution.

        An entry point named ``package_name`` (or the name without the package
        prefix) in the configured group is tried first. Otherwise, and only
        when ``package_name`` carries the configured package prefix, the module
        ``package_name`` with dashes replaced by underscores is imported.

        Returns:
            The registered plugin name and class

        Raises:
            PluginNotFoundError: No entry point matches and the name is not a plugin package
        """
        target = self._load_entry_point(package_name)
        if target is None:
            prefix = self.config.package_prefix
            if not prefix or not package_name.startswith(prefix):
                raise PluginNotFoundError(
                    f"Plugin '{package_name}' not found. Register it, add an entry point to the "
                    f"'{self.config.entry_point_group}' group or install a '{prefix}*' package",
                    plugin_name=package_name,
                )

            module_name = package_name.replace("-", "_")
            try:
                target = importlib.import_module(module_name)
            except ModuleNotFoundError as e:
                if e.name != module_name:
                    raise
                raise PluginNotFoundError(
                    f"Plugin package '{package_name}' not found. Install it with: pip install {package_name}",
                    plugin_name=package_name,
                ) from e

        plugin_class = self._select_class(target, source=package_name)
        plugin_name = name or _declared_name(plugin_class) or package_name.removeprefix(self.config.package_prefix)

        self.register(plugin_name, plugin_class)
        self._sources[plugin_name] = f"package:{package_name}"
        return plugin_name, plugin_class

    def _load_entry_point(self, package_name: str) -> Any:
        candidates = {package_name, package_name.removeprefix(self.config.package_prefix)}
        for ep in metadata.entry_points(group=self.config.entry_point_group):
            if ep.name in candidates:
                logger.debug(f"Loading plugin entry point {ep.name} = {ep.value}")
                return ep.load()
        return None

    def load_from_path(self, file_path: str | Path, *, name: str | None = None) -> tuple[str, PluginFactory]:
        """Load a plugin class from a local Python file.

        Only existing ``.py`` files are accepted. When ``plugin_dirs`` is
        configured the file must live inside one of them.

        Returns:
            The registered plugin name and class
        """
        path = Path(file_path).resolve()

        if path.suffix != ".py":
            raise InvalidPluginError(f"Plugin file must be a .py file: {path}")
        if not path.is_file():
            raise PluginNotFoundError(f"Plugin file not found: {path}", plugin_name=name or path.stem)

        allowed = [Path(d).resolve() for d in self.config.plugin_dirs]
        if allowed and not any(path.is_relative_to(d) for d in allowed):
            raise InvalidPluginError(f"Plugin file is outside the configured plugin directories: {path}")

        module_name = f"dank_runtime_plugin_{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise InvalidPluginError(f"Cannot import plugin file: {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise

        plugin_class = self._select_class(module, source=str(path))
        plugin_name = name or _declared_name(plugin_class) or path.stem

        self.register(plugin_name, plugin_class)
        self._sources[plugin_name] = str(path)
        return plugin_name, plugin_class

    def _select_class(self, target: Any, *, source: str) -> PluginFactory:
        if not isinstance(target, ModuleType):
            if implements_capabilities(target) and callable(target):
                return target
            raise InvalidPluginError(f"'{source}' does not provide a plugin implementation")

        explicit = getattr(target, "plugin_class", None)
        if explicit is not None:
            if not implements_capabilities(explicit):
                raise InvalidPluginError(f"'{source}' exports a plugin_class that is not a plugin")
            return explicit

        candidates = [
            obj
            for _, obj in inspect.getmembers(target, inspect.isclass)
            if obj.__module__ == target.__name__ and obj is not Plugin and implements_capabilities(obj)
        ]
        if len(candidates) != 1:
            raise InvalidPluginError(
                f"'{source}' must define exactly one plugin class or set plugin_class "
                f"(found {len(candidates) or 'none'})"
            )
        return candidates[0]

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    async def create(self, name: str, config: Mapping[str, Any] | None = None) -> PluginCapabilities:
        """Instantiate, validate and initialize a registered plugin.

        ``${VAR}`` and ``${VAR:default}`` placeholders in ``config`` are
        resolved against the environment before the plugin sees it.
        """
        plugin_class = self._classes.get(name)
        if plugin_class is None:
            raise PluginNotFoundError(
                f"Plugin '{name}' not registered. Load it first with load_from_package() or load_from_path()",
                plugin_name=name,
            )

        injected = inject_env_vars(dict(config or {}))
        if isinstance(plugin_class, type) and issubclass(plugin_class, Plugin) and not plugin_class.name:
            plugin = plugin_class(injected, name=name)
        else:
            plugin = plugin_class(injected)

        validate = getattr(plugin, "validate_config", None)
        if callable(validate):
            validated = validate(injected)
            if isinstance(validated, Mapping) and hasattr(plugin, "config"):
                plugin.config = dict(validated)

        await plugin.init()
        self._instances[name] = plugin
        logger.info(f"Created plugin: {name}")
        return plugin

    def get(self, name: str) -> PluginCapabilities | None:
        return self._instances.get(name)

    def get_all(self) -> list[PluginCapabilities]:
        return list(self._instances.values())

    def has(self, name: str) -> bool:
        """Whether an implementation is registered under ``name``."""
        return name in self._classes

    def is_loaded(self, name: str) -> bool:
        """Whether a live instance exists for ``name``."""
        return name in self._instances

    def get_class(self, name: str) -> PluginFactory | None:
        return self._classes.get(name)

    def get_dependencies(self, name: str) -> list[str]:
        return list(self._dependencies.get(name, []))

    def resolve_dependencies(self, names: Iterable[str]) -> list[str]:
        """Order plugins so every dependency precedes its dependents.

        Raises:
            CircularDependencyError: If the dependency graph has a cycle
            MissingDependencyError: If a dependency is not registered
        """
        resolved: list[str] = []
        visited: set[str] = set()
        visiting: set[str] = set()

        def visit(name: str) -> None:
            if name in visiting:
                raise CircularDependencyError(name)
            if name in visited:
                return

            visiting.add(name)
            for dep in self.get_dependencies(name):
                if not self.has(dep):
                    raise MissingDependencyError(name, dep)
                visit(dep)
            visiting.discard(name)

            visited.add(name)
            resolved.append(name)

        for name in names:
            visit(name)

        return resolved

    async def unload(self, name: str) -> PluginRegistry:
        """Destroy and forget the live instance; the implementation stays registered."""
        plugin = self._instances.pop(name, None)
        if plugin is not None:
            await plugin.destroy()
            logger.info(f"Unloaded plugin: {name}")
        return self

    async def unload_all(self) -> PluginRegistry:
        for name in list(self._instances):
            await self.unload(name)
        return self

    def get_metadata(self) -> dict[str, Any]:
        return {
            "registered": list(self._classes),
            "loaded": [
                {
                    "name": name,
                    "status": _status_value(plugin),
                    "path": self._sources.get(name),
                }
                for name, plugin in self._instances.items()
            ],
            "dependencies": {name: list(deps) for name, deps in self._dependencies.items() if deps},
        }


def _declared_name(plugin_class: Any) -> str | None:
    name = getattr(plugin_class, "name", None)
    return name if isinstance(name, str) and name else None


def _status_value(plugin: Any) -> Any:
    status = getattr(plugin, "status", None)
    return getattr(status, "value", status)


__all__ = ["PluginRegistry"]
