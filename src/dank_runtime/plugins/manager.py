"""
Plugin manager: attaches plugins to an agent.

Adding a plugin registers its tools in the agent's tool registry under
``plugin:<plugin>:<tool>``, merges its handlers into the agent's event bus and
routes ``plugin:<plugin>:*`` events to both the agent and the plugin. Plugins
are not started when added; ``start_all`` starts them.

Removing a plugin stops it, drops its routes and destroys it. Tools it
contributed stay in the agent's registry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..concurrency import maybe_await
from ..errors import InvalidPluginError, PluginAlreadyLoadedError
from ..events import EventRouter, normalize_event_name, plugin_namespace
from .base import AgentContext, PluginCapabilities, PluginStatus, implements_capabilities
from .registry import PluginRegistry

if TYPE_CHECKING:
    from ..agent import Agent

logger = logging.getLogger(__name__)

# Keys of a plugin tool that are passed on to ToolRegistry.register
_TOOL_DEFINITION_KEYS = (
    "description",
    "parameters",
    "handler",
    "category",
    "version",
    "timeout",
    "retries",
    "cacheable",
    "cache_ttl",
)


class PluginManager:
    def __init__(self, agent: Agent, registry: PluginRegistry | None = None):
        self.agent = agent
        self.registry = registry if registry is not None else PluginRegistry(agent.settings.plugins)
        self.router = EventRouter()
        self._plugins: dict[str, PluginCapabilities] = {}

    async def add_plugin(
        self,
        plugin: str | PluginCapabilities,
        config: Mapping[str, Any] | None = None,
    ) -> PluginCapabilities:
        """
        Create (or accept) a plugin and attach it to the agent.

        A string is resolved in this order: a name registered with the
        registry, a local ``.py`` path, an installed package. Instances are
        attached as given.

        Raises:
            PluginAlreadyLoadedError: A plugin with that name is already attached
        """
        if not isinstance(plugin, str):
            if not implements_capabilities(plugin):
                raise InvalidPluginError(f"{type(plugin).__name__} does not implement the plugin interface")
            name = getattr(plugin, "name", None)
            if not isinstance(name, str) or not name:
                raise InvalidPluginError("Plugin instances must have a non-empty name")
            self._ensure_new(name)
            return await self._attach(name, plugin)

        self._ensure_new(plugin)

        if self.registry.has(plugin):
            name = plugin
        elif plugin.endswith(".py"):
            name, _ = self.registry.load_from_path(plugin)
        else:
            name, _ = self.registry.load_from_package(plugin)

        self._ensure_new(name)
        instance = await self.registry.create(name, config)
        return await self._attach(name, instance)

    def _ensure_new(self, name: str) -> None:
        if name in self._plugins:
            raise PluginAlreadyLoadedError(name)

    async def _attach(self, name: str, plugin: PluginCapabilities) -> PluginCapabilities:
        agent = self.agent

        set_context = getattr(plugin, "set_agent_context", None)
        if callable(set_context):
            set_context(
                AgentContext(
                    agent=agent,
                    agent_id=agent.id,
                    agent_name=agent.name,
                    tool_registry=agent.tool_registry,
                    tool_executor=agent.tool_executor,
                )
            )
        set_manager = getattr(plugin, "set_plugin_manager", None)
        if callable(set_manager):
            set_manager(self)

        for tool in plugin.get_tools():
            definition = {key: tool[key] for key in _TOOL_DEFINITION_KEYS if key in tool}
            definition.setdefault("description", f"Tool from plugin '{name}'")
            definition.setdefault("category", "plugin")
            definition["metadata"] = {**tool.get("metadata", {}), "plugin": name}
            agent.tool_registry.register(normalize_event_name(tool["name"], name), definition, replace=True)

        for pattern, handlers in plugin.get_handlers().items():
            for handler in handlers:
                agent.add_handler(pattern, handler)

        namespace = plugin_namespace(name)
        self.router.route(namespace, agent.emit)
        target = _delivery_target(plugin)
        if target is not None:
            self.router.route(namespace, target)

        self._plugins[name] = plugin
        logger.info(f"Added plugin '{name}' to agent '{agent.name}'")

        if agent.settings.plugins.autostart:
            await plugin.start()
        return plugin

    async def add_plugins(self, plugins: Mapping[str, Mapping[str, Any] | None]) -> PluginManager:
        """Add registered plugins in dependency order."""
        for name in self.registry.resolve_dependencies(plugins.keys()):
            if name not in self._plugins:
                await self.add_plugin(name, plugins.get(name))
        return self

    def get_plugin(self, name: str) -> PluginCapabilities | None:
        return self._plugins.get(name)

    def get_all_plugins(self) -> list[PluginCapabilities]:
        return list(self._plugins.values())

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    async def remove_plugin(self, name: str) -> PluginManager:
        """Stop, unroute and destroy a plugin. Unknown names are ignored."""
        plugin = self._plugins.get(name)
        if plugin is None:
            return self

        await plugin.stop()

        namespace = plugin_namespace(name)
        self.router.unroute(namespace, self.agent.emit)
        target = _delivery_target(plugin)
        if target is not None:
            self.router.unroute(namespace, target)

        if self.registry.get(name) is plugin:
            await self.registry.unload(name)
        else:
            await plugin.destroy()

        del self._plugins[name]
        logger.info(f"Removed plugin '{name}' from agent '{self.agent.name}'")
        return self

    async def remove_all_plugins(self) -> PluginManager:
        for name in list(self._plugins):
            await self.remove_plugin(name)
        return self

    async def start_all(self) -> PluginManager:
        """Start every plugin that is not already running, in the order they were added."""
        for plugin in self._plugins.values():
            if _status(plugin) is not PluginStatus.RUNNING:
                await plugin.start()
        return self

    async def stop_all(self) -> PluginManager:
        for plugin in self._plugins.values():
            if _status(plugin) is not PluginStatus.STOPPED:
                await plugin.stop()
        return self

    def get_metadata(self) -> dict[str, Any]:
        return {
            "plugins": [_metadata(name, plugin) for name, plugin in self._plugins.items()],
            "registry": self.registry.get_metadata(),
            "event_routes": self.router.get_routes(),
        }

    async def emit_to_plugins(self, event_name: str, data: Any = None) -> None:
        """Have every plugin publish ``event_name`` in its own namespace."""
        for plugin in list(self._plugins.values()):
            emit = getattr(plugin, "emit", None)
            if callable(emit):
                await maybe_await(emit(event_name, data))

    async def route_event(self, event_name: str, data: Any = None) -> int:
        return await self.router.emit(event_name, data)


def _delivery_target(plugin: PluginCapabilities) -> Any:
    """The router target for a plugin: its local dispatch, or its emit."""
    return getattr(plugin, "dispatch", None) or getattr(plugin, "emit", None)


def _status(plugin: Any) -> PluginStatus | None:
    status = getattr(plugin, "status", None)
    try:
        return PluginStatus(status) if status is not None else None
    except ValueError:
        return None


def _metadata(name: str, plugin: Any) -> dict[str, Any]:
    get_metadata = getattr(plugin, "get_metadata", None)
    if callable(get_metadata):
        return get_metadata()
    status = _status(plugin)
    return {"name": name, "status": status.value if status else None}


__all__ = ["PluginManager"]
