"""
Plugin capability interface and the default plugin implementation.

Anything that provides ``init``, ``start``, ``stop``, ``destroy``,
``get_tools`` and ``get_handlers`` can be loaded as a plugin; ``Plugin`` is a
ready-made implementation with state, tools, handlers and a serialized
lifecycle.

Lifecycle:

    initialized --start()--> starting --> running --stop()--> stopping --> stopped

A hook that raises during ``starting`` or ``stopping`` moves the plugin to
``error`` and the exception propagates. ``start()`` is accepted again from
``stopped`` or ``error``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ..concurrency import maybe_await
from ..errors import InvalidPluginError, PluginError
from ..events import EventBus, EventHandler, create_plugin_event, normalize_event_name
from .config import validate_config as validate_plugin_config

if TYPE_CHECKING:
    from ..agent import Agent
    from ..tools import ToolExecutor, ToolRegistry
    from .manager import PluginManager

logger = logging.getLogger(__name__)

CAPABILITY_METHODS = ("init", "start", "stop", "destroy", "get_tools", "get_handlers")


class PluginStatus(str, Enum):
    INITIALIZED = "initialized"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


@runtime_checkable
class PluginCapabilities(Protocol):
    """Structural interface every loadable plugin implements."""

    name: str

    async def init(self) -> Any: ...

    async def start(self) -> Any: ...

    async def stop(self) -> Any: ...

    async def destroy(self) -> Any: ...

    def get_tools(self) -> list[dict[str, Any]]: ...

    def get_handlers(self) -> dict[str, list[EventHandler]]: ...


def implements_capabilities(candidate: Any) -> bool:
    """True if ``candidate`` (an instance or a class) exposes every capability method."""
    return all(callable(getattr(candidate, method, None)) for method in CAPABILITY_METHODS)


@dataclass
class AgentContext:
    """What a plugin can reach of the agent it is attached to."""

    agent: Agent
    agent_id: str
    agent_name: str
    tool_registry: ToolRegistry
    tool_executor: ToolExecutor


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Plugin:
    """
    Base implementation of the plugin capability set.

    Subclasses set ``name`` (or pass it to ``__init__``), register tools and
    handlers in ``__init__`` or ``init``, and override the ``on_start`` /
    ``on_stop`` / ``on_destroy`` hooks.

    Example:
        ```python
        class CounterPlugin(Plugin):
            name = "counter"

            def __init__(self, config=None):
                super().__init__(config)
                self.register_tool("increment", {
                    "description": "Increment the shared counter",
                    "handler": self.increment,
                })
                self.on("request_output", self.count_request)

            def increment(self, params):
                self.set_state("count", (self.get_state("count") or 0) + 1)
                return self.get_state("count")
        ```
    """

    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    dependencies: tuple[str, ...] = ()

    # JSON schema checked by validate_config; None accepts anything
    config_schema: dict[str, Any] | None = None

    def __init__(self, config: Mapping[str, Any] | None = None, *, name: str | None = None):
        name = name or type(self).name
        if not isinstance(name, str) or not name.strip():
            raise InvalidPluginError("Plugin name must be a non-empty string")

        self.name = name
        self.id = str(uuid.uuid4())
        self.config: dict[str, Any] = dict(config or {})
        self.status = PluginStatus.INITIALIZED
        self.created_at = _now()
        self.started_at: str | None = None
        self.stopped_at: str | None = None
        self.last_error: BaseException | None = None

        self.state: dict[str, Any] = {}
        self.tools: dict[str, dict[str, Any]] = {}
        self.handlers: dict[str, list[EventHandler]] = {}
        self.bus = EventBus(name=f"plugin:{name}")

        self.agent_context: AgentContext | None = None
        self.plugin_manager: PluginManager | None = None
        self._lifecycle_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> Plugin:
        self.status = PluginStatus.INITIALIZED
        return self

    async def start(self) -> Plugin:
        """Run ``on_start``; a no-op when already running."""
        async with self._lifecycle_lock:
            if self.status is PluginStatus.RUNNING:
                return self
            self._transition(PluginStatus.STARTING)
            self.started_at = _now()
            try:
                await maybe_await(self.on_start())
            except Exception as e:
                self._fail(e)
                raise
            self._transition(PluginStatus.RUNNING)

        await self.dispatch(create_plugin_event(self.name, "started"), {"plugin": self.name})
        return self

    async def stop(self) -> Plugin:
        """Run ``on_stop``; a no-op when already stopped."""
        async with self._lifecycle_lock:
            if self.status in (PluginStatus.STOPPED, PluginStatus.STOPPING):
                return self
            self._transition(PluginStatus.STOPPING)
            try:
                await maybe_await(self.on_stop())
            except Exception as e:
                self._fail(e)
                raise
            self._transition(PluginStatus.STOPPED)
            self.stopped_at = _now()

        await self.dispatch(create_plugin_event(self.name, "stopped"), {"plugin": self.name})
        return self

    async def destroy(self) -> Plugin:
        """Stop if needed, run ``on_destroy`` and drop state, tools and handlers."""
        if self.status is not PluginStatus.STOPPED:
            await self.stop()

        await maybe_await(self.on_destroy())
        self.bus.clear()
        self.state.clear()
        self.tools.clear()
        self.handlers.clear()
        logger.info(f"Plugin '{self.name}' destroyed")
        return self

    def _transition(self, status: PluginStatus) -> None:
        logger.debug(f"Plugin '{self.name}': {self.status.value} -> {status.value}")
        self.status = status

    def _fail(self, error: Exception) -> None:
        self.last_error = error
        self._transition(PluginStatus.ERROR)
        logger.error(f"Plugin '{self.name}' lifecycle hook failed: {error}")

    async def on_start(self) -> None:
        pass

    async def on_stop(self) -> None:
        pass

    async def on_destroy(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, pattern: str, handler: EventHandler) -> Plugin:
        """Register a handler; it is merged into the agent's bus when the plugin is added."""
        self.bus.on(pattern, handler)
        self.handlers.setdefault(pattern, []).append(handler)
        return self

    def off(self, pattern: str, handler: EventHandler) -> Plugin:
        self.bus.off(pattern, handler)
        handlers = self.handlers.get(pattern)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self.handlers[pattern]
        return self

    def get_handlers(self) -> dict[str, list[EventHandler]]:
        return {pattern: list(handlers) for pattern, handlers in self.handlers.items()}

    async def emit(self, event_name: str, data: Any = None) -> int:
        """
        Publish an event in this plugin's namespace.

        The name is prefixed with ``plugin:<name>:`` unless it already is a
        plugin event. When attached to a manager the event goes through its
        router (reaching the agent and this plugin); otherwise it is only
        delivered locally.
        """
        event = normalize_event_name(event_name, self.name)
        if self.plugin_manager is not None:
            return await self.plugin_manager.route_event(event, data)
        return await self.dispatch(event, data)

    async def dispatch(self, event_name: str, data: Any = None) -> int:
        """Deliver an event to this plugin's own handlers, under its full and its short name."""
        count = await self.bus.emit(event_name, data)
        prefix = create_plugin_event(self.name, "")
        if event_name.startswith(prefix) and len(event_name) > len(prefix):
            count += await self.bus.emit(event_name[len(prefix) :], data)
        return count

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def register_tool(self, name: str, definition: Mapping[str, Any]) -> Plugin:
        """Store a tool as ``plugin:<plugin>:<name>``; it reaches the agent when the plugin is added."""
        if not isinstance(name, str) or not name.strip():
            raise InvalidPluginError("Tool name must be a non-empty string", name=self.name)

        qualified = create_plugin_event(self.name, name)
        self.tools[qualified] = {
            **definition,
            "name": qualified,
            "plugin": self.name,
            "registered_at": _now(),
        }
        logger.debug(f"Plugin '{self.name}' registered tool '{qualified}'")
        return self

    def get_tools(self) -> list[dict[str, Any]]:
        return list(self.tools.values())

    def get_tool(self, name: str) -> dict[str, Any] | None:
        return self.tools.get(normalize_event_name(name, self.name))

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def set_state(self, key: str, value: Any) -> Plugin:
        self.state[key] = value
        logger.debug(f"Plugin '{self.name}' state changed: {key}")
        return self

    def get_state(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)

    def get_all_state(self) -> dict[str, Any]:
        return dict(self.state)

    def clear_state(self) -> Plugin:
        self.state.clear()
        return self

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def set_agent_context(self, context: AgentContext) -> Plugin:
        self.agent_context = context
        return self

    def set_plugin_manager(self, manager: PluginManager | None) -> Plugin:
        self.plugin_manager = manager
        return self

    def get_plugin(self, name: str) -> Any:
        return self._require_manager().get_plugin(name)

    def get_plugins(self) -> list[Any]:
        return self._require_manager().get_all_plugins()

    def _require_manager(self) -> PluginManager:
        if self.plugin_manager is None:
            raise PluginError("Plugin manager not available")
        return self.plugin_manager

    def validate_config(self, config: Mapping[str, Any]) -> dict[str, Any]:
        """Check ``config`` against ``config_schema`` and return it with defaults applied."""
        return validate_plugin_config(self.name, config, self.config_schema)

    def get_metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "version": self.version,
            "status": self.status.value,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "stopped_at": self.stopped_at,
            "tool_count": len(self.tools),
            "handler_count": len(self.handlers),
            "state_size": len(self.state),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, status={self.status.value!r})"


PluginFactory = Callable[..., PluginCapabilities]


__all__ = [
    "AgentContext",
    "CAPABILITY_METHODS",
    "Plugin",
    "PluginCapabilities",
    "PluginFactory",
    "PluginStatus",
    "implements_capabilities",
]
