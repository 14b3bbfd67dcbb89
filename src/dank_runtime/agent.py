"""
Agent: the host object extensions attach to.

An agent owns an event bus, a tool registry with its executor and, once the
first plugin is added, a plugin manager. Builder methods return the agent so
configuration reads as a chain:

    ```python
    agent = (
        Agent("support-bot")
        .set_id(str(uuid.uuid4()))
        .add_tool("echo", {
            "description": "Echo the given text back",
            "parameters": {"text": {"type": "string", "required": True}},
            "handler": lambda p: p["text"],
        })
        .add_handler("request_output", log_output)
    )
    await agent.add_plugin("dank-plugin-postgres", {"host": "${DB_HOST:localhost}"})
    await agent.start_plugins()
    ```
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from .callbacks import CallbackRegistry, default_callbacks
from .config import Settings, get_settings
from .errors import ValidationError
from .events import EventBus, EventHandler
from .logging import get_logger
from .plugins import PluginCapabilities, PluginManager
from .tools import BUILTIN_TOOLS, ToolDefinition, ToolExecutor, ToolRegistry

logger = get_logger(__name__)

_UUID4_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)


def _validate_agent_id(agent_id: Any) -> str:
    if not isinstance(agent_id, str) or not agent_id.strip():
        raise ValidationError("Agent ID must be a non-empty string", name="id")
    agent_id = agent_id.strip()
    if not _UUID4_RE.match(agent_id):
        raise ValidationError(f"Agent ID must be a valid UUIDv4. Received: {agent_id}", name="id")
    return agent_id


class Agent:
    """
    Host for handlers, tools and plugins.

    Args:
        name: Agent name
        settings: Runtime settings; the global settings when omitted
        agent_id: UUIDv4 identifier; can also be set later with ``set_id``
        callbacks: Table used to resolve handler references given as strings
    """

    def __init__(
        self,
        name: str,
        *,
        settings: Settings | None = None,
        agent_id: str | None = None,
        callbacks: CallbackRegistry | None = None,
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Agent name must be a non-empty string", name="name")

        self.name = name
        self.id: str | None = _validate_agent_id(agent_id) if agent_id is not None else None
        self.settings = settings or get_settings()
        self.callbacks = callbacks if callbacks is not None else default_callbacks
        self.environment: dict[str, str] = {}
        self.created_at = datetime.now(timezone.utc).isoformat()

        self.event_bus = EventBus(name=f"agent:{name}")
        self.tool_registry = ToolRegistry(self.settings.tools)

        executor_config = self.settings.executor
        self.tool_executor = ToolExecutor(
            self.tool_registry,
            history_limit=executor_config.history_limit,
            backoff_base=executor_config.backoff_base,
            canonical_cache_keys=executor_config.canonical_cache_keys,
        )

        self._plugin_manager: PluginManager | None = None
        # pattern -> callback references, in registration order
        self._handler_refs: dict[str, list[str | None]] = {}

        agent_config = self.settings.agent
        if agent_config.enable_builtin_tools:
            if agent_config.builtin_tools is None:
                self.register_builtin_tools()
            else:
                self.configure_builtin_tools(agent_config.builtin_tools)

    @property
    def plugin_manager(self) -> PluginManager:
        if self._plugin_manager is None:
            self._plugin_manager = PluginManager(self)
        return self._plugin_manager

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def set_id(self, agent_id: str) -> Agent:
        """Set the agent's UUIDv4 identifier."""
        self.id = _validate_agent_id(agent_id)
        return self

    def set_environment(self, env: Mapping[str, str]) -> Agent:
        """Merge ``env`` into the agent's environment variables."""
        self.environment.update(env)
        return self

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def add_handler(self, pattern: str, handler: EventHandler | str) -> Agent:
        """
        Register a handler for an event pattern.

        ``handler`` may be a callable or a reference resolved through the
        agent's callback table.
        """
        func = self.callbacks.resolve(handler)
        self.event_bus.on(pattern, func)

        ref = handler if isinstance(handler, str) else self.callbacks.reference_for(func)
        self._handler_refs.setdefault(pattern, []).append(ref)
        return self

    def add_handlers(self, handlers: Mapping[str, EventHandler | str | Iterable[EventHandler | str]]) -> Agent:
        for pattern, value in handlers.items():
            if isinstance(value, str) or callable(value):
                self.add_handler(pattern, value)
            else:
                for handler in value:
                    self.add_handler(pattern, handler)
        return self

    def handler_refs(self) -> dict[str, list[str | None]]:
        """
        Pattern -> callback references for every handler added through the agent.

        Handlers without a reference (lambdas, closures) appear as ``None``;
        they cannot be reproduced in another process.
        """
        return {pattern: list(refs) for pattern, refs in self._handler_refs.items()}

    async def emit(self, event_name: str, data: Any = None) -> int:
        return await self.event_bus.emit(event_name, data)

    async def emit_with_response(self, event_name: str, data: Any = None) -> dict[str, Any]:
        return await self.event_bus.emit_with_response(event_name, data)

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def add_tool(self, name: str, definition: Mapping[str, Any] | ToolDefinition) -> Agent:
        if isinstance(definition, Mapping) and isinstance(definition.get("handler"), str):
            definition = {**definition, "handler": self.callbacks.resolve(definition["handler"])}
        self.tool_registry.register(name, definition)
        return self

    def add_tools(self, tools: Mapping[str, Mapping[str, Any] | ToolDefinition]) -> Agent:
        for name, definition in tools.items():
            self.add_tool(name, definition)
        return self

    def register_builtin_tools(self) -> Agent:
        for name, definition in BUILTIN_TOOLS.items():
            self.tool_registry.register(name, definition, replace=True)
        return self

    def configure_builtin_tools(self, enabled: Mapping[str, bool]) -> Agent:
        """Replace the registered built-in tools with the ones enabled in ``enabled``."""
        for name in BUILTIN_TOOLS:
            self.tool_registry.unregister(name)

        for name, on in enabled.items():
            if on and name in BUILTIN_TOOLS:
                self.tool_registry.register(name, BUILTIN_TOOLS[name])
            elif on:
                logger.warning(f"Unknown built-in tool '{name}' ignored", agent=self.name)
        return self

    async def use_tool(
        self,
        tool_name: str,
        params: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """Execute a tool with the agent's identity added to the call context."""
        agent_context = {
            **(context or {}),
            "agent_id": self.id,
            "agent_name": self.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return await self.tool_executor.execute(tool_name, params, agent_context)

    def get_tools(self) -> list[ToolDefinition]:
        return self.tool_registry.get_all()

    def get_tools_by_category(self, category: str) -> list[ToolDefinition]:
        return self.tool_registry.get_by_category(category)

    def get_tool_stats(self) -> dict[str, Any]:
        return self.tool_executor.get_stats()

    def get_function_schema(self) -> list[dict[str, Any]]:
        return self.tool_registry.to_function_schema()

    def get_openai_tool_schema(self) -> list[dict[str, Any]]:
        return self.tool_registry.to_openai_schema()

    # -------------------------------------------------------------------------
    # Plugins
    # -------------------------------------------------------------------------

    async def add_plugin(
        self,
        plugin: str | PluginCapabilities,
        config: Mapping[str, Any] | None = None,
    ) -> Agent:
        await self.plugin_manager.add_plugin(plugin, config)
        return self

    async def add_plugins(self, plugins: Mapping[str, Mapping[str, Any] | None]) -> Agent:
        await self.plugin_manager.add_plugins(plugins)
        return self

    async def remove_plugin(self, name: str) -> Agent:
        if self._plugin_manager is not None:
            await self._plugin_manager.remove_plugin(name)
        return self

    async def start_plugins(self) -> Agent:
        if self._plugin_manager is not None:
            await self._plugin_manager.start_all()
        return self

    async def stop_plugins(self) -> Agent:
        if self._plugin_manager is not None:
            await self._plugin_manager.stop_all()
        return self

    def get_plugin(self, name: str) -> PluginCapabilities | None:
        if self._plugin_manager is None:
            return None
        return self._plugin_manager.get_plugin(name)

    def get_plugins(self) -> list[PluginCapabilities]:
        if self._plugin_manager is None:
            return []
        return self._plugin_manager.get_all_plugins()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_config(self) -> dict[str, Any]:
        """
        Describe the agent for a packaging layer.

        Handlers are exported as callback references; tools as their
        definitions without handlers.

        Raises:
            ValidationError: If no agent ID has been set
        """
        if self.id is None:
            raise ValidationError(
                f"Agent ID is required for agent '{self.name}'. Use set_id() with a UUIDv4.",
                name="id",
            )

        return {
            "name": self.name,
            "id": self.id,
            "created_at": self.created_at,
            "environment": dict(self.environment),
            "handlers": self.handler_refs(),
            "tools": [tool.to_dict() for tool in self.tool_registry.get_all()],
            "plugins": self._plugin_manager.get_metadata()["plugins"] if self._plugin_manager else [],
        }

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        settings: Settings | None = None,
        callbacks: CallbackRegistry | None = None,
    ) -> Agent:
        """
        Rebuild an agent's identity, environment and handlers from ``to_config`` output.

        Handler references are resolved through ``callbacks``; handlers
        exported without a reference are skipped with a warning.
        """
        agent = cls(config["name"], settings=settings, agent_id=config.get("id"), callbacks=callbacks)
        agent.set_environment(config.get("environment") or {})

        for pattern, refs in (config.get("handlers") or {}).items():
            for ref in refs:
                if ref is None:
                    logger.warning(f"Skipping handler without a reference for '{pattern}'", agent=agent.name)
                    continue
                agent.add_handler(pattern, ref)
        return agent

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, id={self.id!r})"


__all__ = ["Agent"]
