"""
Tests for the plugin base class, its lifecycle and the plugin manager.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import AGENT_ID, CounterPlugin, FailingStartPlugin
from dank_runtime.agent import Agent
from dank_runtime.config import AgentConfig, PluginsConfig, Settings
from dank_runtime.errors import InvalidPluginError, PluginAlreadyLoadedError, PluginError, PluginNotFoundError
from dank_runtime.plugins import Plugin, PluginManager, PluginStatus, implements_capabilities


class TestPluginBase:
    """Test the default plugin implementation."""

    def test_requires_name(self):
        with pytest.raises(InvalidPluginError):
            Plugin()

        assert Plugin(name="explicit").name == "explicit"

    def test_implements_capabilities(self, counter_plugin):
        assert implements_capabilities(counter_plugin)
        assert implements_capabilities(CounterPlugin)
        assert not implements_capabilities(object())

    def test_state(self, counter_plugin):
        counter_plugin.set_state("a", 1).set_state("b", [2])

        assert counter_plugin.get_state("a") == 1
        assert counter_plugin.get_state("missing", "default") == "default"
        assert counter_plugin.get_all_state() == {"a": 1, "b": [2]}

        counter_plugin.clear_state()
        assert counter_plugin.get_all_state() == {}

    def test_register_tool_is_namespaced(self, counter_plugin):
        tool = counter_plugin.get_tool("increment")

        assert tool["name"] == "plugin:counter:increment"
        assert tool["plugin"] == "counter"
        assert counter_plugin.get_tool("plugin:counter:increment") is tool

    def test_handlers(self, counter_plugin):
        handler = MagicMock()
        counter_plugin.on("custom", handler)

        assert counter_plugin.get_handlers()["custom"] == [handler]

        counter_plugin.off("custom", handler)
        assert "custom" not in counter_plugin.get_handlers()

    @pytest.mark.asyncio
    async def test_emit_without_manager_dispatches_locally(self, counter_plugin):
        full = MagicMock()
        short = MagicMock()
        counter_plugin.on("plugin:counter:ready", full).on("ready", short)

        count = await counter_plugin.emit("ready", {"ok": True})

        assert count == 2
        full.assert_called_once_with({"ok": True})
        short.assert_called_once_with({"ok": True})

    def test_manager_required_for_lookup(self, counter_plugin):
        with pytest.raises(PluginError, match="Plugin manager not available"):
            counter_plugin.get_plugin("other")

    def test_metadata(self, counter_plugin):
        metadata = counter_plugin.get_metadata()

        assert metadata["name"] == "counter"
        assert metadata["version"] == "2.0.0"
        assert metadata["status"] == "initialized"
        assert metadata["tool_count"] == 1
        assert metadata["handler_count"] == 1


class TestLifecycle:
    """Test lifecycle transitions."""

    @pytest.mark.asyncio
    async def test_start_stop(self, counter_plugin):
        await counter_plugin.start()
        assert counter_plugin.status is PluginStatus.RUNNING
        assert counter_plugin.started_at is not None

        await counter_plugin.stop()
        assert counter_plugin.status is PluginStatus.STOPPED
        assert counter_plugin.stopped_at is not None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, counter_plugin):
        """start() on a running plugin runs the start hook only once."""
        await counter_plugin.start()
        await counter_plugin.start()

        assert counter_plugin.start_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_starts_run_hook_once(self, counter_plugin):
        await asyncio.gather(counter_plugin.start(), counter_plugin.start())

        assert counter_plugin.start_calls == 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, counter_plugin):
        await counter_plugin.start()
        await counter_plugin.stop()
        await counter_plugin.stop()

        assert counter_plugin.stop_calls == 1

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, counter_plugin):
        await counter_plugin.start()
        await counter_plugin.stop()
        await counter_plugin.start()

        assert counter_plugin.status is PluginStatus.RUNNING
        assert counter_plugin.start_calls == 2

    @pytest.mark.asyncio
    async def test_failing_start_moves_to_error(self):
        plugin = FailingStartPlugin()

        with pytest.raises(RuntimeError, match="connection refused"):
            await plugin.start()

        assert plugin.status is PluginStatus.ERROR
        assert isinstance(plugin.last_error, RuntimeError)

        # start() is accepted again from the error state
        with pytest.raises(RuntimeError):
            await plugin.start()

    @pytest.mark.asyncio
    async def test_lifecycle_events_dispatched_locally(self, counter_plugin):
        started = MagicMock()
        counter_plugin.on("started", started)

        await counter_plugin.start()

        started.assert_called_once_with({"plugin": "counter"})

    @pytest.mark.asyncio
    async def test_destroy_clears_everything(self, counter_plugin):
        await counter_plugin.start()
        counter_plugin.set_state("k", "v")

        await counter_plugin.destroy()

        assert counter_plugin.status is PluginStatus.STOPPED
        assert counter_plugin.get_tools() == []
        assert counter_plugin.get_handlers() == {}
        assert counter_plugin.get_all_state() == {}


class TestPluginManager:
    """Test attaching plugins to an agent."""

    @pytest.mark.asyncio
    async def test_add_plugin_does_not_start(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)

        assert agent.get_plugin("counter") is counter_plugin
        assert counter_plugin.status is PluginStatus.INITIALIZED
        assert counter_plugin.agent_context.agent_id == AGENT_ID
        assert counter_plugin.agent_context.tool_registry is agent.tool_registry

    @pytest.mark.asyncio
    async def test_tools_are_namespaced_in_agent_registry(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)

        tool = agent.tool_registry.get("plugin:counter:increment")
        assert tool is not None
        assert tool.category == "plugin"
        assert tool.metadata["plugin"] == "counter"

        assert await agent.use_tool("plugin:counter:increment", {}) == 1
        assert await agent.use_tool("plugin:counter:increment", {"by": 2}) == 3

    @pytest.mark.asyncio
    async def test_handlers_are_merged_into_agent_bus(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)

        await agent.emit("request_output", {"response": "hi"})

        assert counter_plugin.received == [{"response": "hi"}]

    @pytest.mark.asyncio
    async def test_plugin_events_reach_agent_and_plugin(self, agent, counter_plugin):
        agent_handler = AsyncMock()
        agent.add_handler("plugin:counter:*", agent_handler)
        await agent.add_plugin(counter_plugin)
        local = MagicMock()
        counter_plugin.on("ready", local)

        delivered = await counter_plugin.emit("ready", {"ok": True})

        assert delivered == 2
        agent_handler.assert_awaited_once_with({"ok": True})
        local.assert_called_once_with({"ok": True})

    @pytest.mark.asyncio
    async def test_other_plugins_events_are_not_routed(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)
        local = MagicMock()
        counter_plugin.on("ready", local)

        assert await agent.plugin_manager.route_event("plugin:other:ready", {}) == 0
        local.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_names_rejected(self, agent):
        await agent.add_plugin(CounterPlugin())

        with pytest.raises(PluginAlreadyLoadedError):
            await agent.add_plugin(CounterPlugin())

    @pytest.mark.asyncio
    async def test_non_conforming_instance_rejected(self, agent):
        with pytest.raises(InvalidPluginError):
            await agent.add_plugin(object())

    @pytest.mark.asyncio
    async def test_start_all_and_stop_all(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)

        await agent.start_plugins()
        await agent.start_plugins()
        assert counter_plugin.status is PluginStatus.RUNNING
        assert counter_plugin.start_calls == 1

        await agent.stop_plugins()
        await agent.stop_plugins()
        assert counter_plugin.status is PluginStatus.STOPPED
        assert counter_plugin.stop_calls == 1

    @pytest.mark.asyncio
    async def test_autostart(self, callbacks):
        settings = Settings(
            plugins=PluginsConfig(autostart=True),
            agent=AgentConfig(enable_builtin_tools=False),
        )
        agent = Agent("auto", settings=settings, callbacks=callbacks)
        plugin = CounterPlugin()

        await agent.add_plugin(plugin)

        assert plugin.status is PluginStatus.RUNNING

    @pytest.mark.asyncio
    async def test_remove_plugin(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)
        await agent.start_plugins()

        await agent.remove_plugin("counter")

        assert agent.get_plugin("counter") is None
        assert counter_plugin.status is PluginStatus.STOPPED
        assert counter_plugin.get_tools() == []
        assert agent.plugin_manager.router.get_routes() == []
        # Contributed tools stay in the agent's registry
        assert "plugin:counter:increment" in agent.tool_registry

    @pytest.mark.asyncio
    async def test_remove_then_add_again(self, agent):
        await agent.add_plugin(CounterPlugin())
        await agent.remove_plugin("counter")
        await agent.remove_plugin("counter")

        replacement = CounterPlugin()
        await agent.add_plugin(replacement)

        assert agent.get_plugin("counter") is replacement

    @pytest.mark.asyncio
    async def test_add_registered_plugins_in_dependency_order(self, agent):
        class Database(Plugin):
            name = "database"

        class Cache(Plugin):
            name = "cache"
            dependencies = ("database",)

        registry = agent.plugin_manager.registry
        registry.register("database", Database)
        registry.register("cache", Cache)

        await agent.add_plugins({"cache": {"ttl": 5}})

        assert [p.name for p in agent.get_plugins()] == ["database", "cache"]
        assert agent.get_plugin("cache").config == {"ttl": 5}
        assert agent.get_plugin("cache").get_plugin("database") is agent.get_plugin("database")
        assert len(agent.get_plugin("database").get_plugins()) == 2

    @pytest.mark.asyncio
    async def test_add_plugin_by_name_uses_registry(self, agent):
        agent.plugin_manager.registry.register("counter", CounterPlugin)

        await agent.add_plugin("counter", {"start": "${UNSET_COUNTER_START:3}"})

        assert agent.get_plugin("counter").config == {"start": "3"}

    @pytest.mark.asyncio
    async def test_add_plugin_from_path(self, agent, tmp_path):
        path = tmp_path / "pinger.py"
        path.write_text(
            "from dank_runtime.plugins import Plugin\n\n\n"
            "class Pinger(Plugin):\n"
            "    name = 'pinger'\n"
        )

        await agent.add_plugin(str(path))

        assert agent.plugin_manager.has_plugin("pinger")

    @pytest.mark.asyncio
    async def test_emit_to_plugins(self, agent, counter_plugin):
        agent_handler = AsyncMock()
        agent.add_handler("plugin:*:tick", agent_handler)
        await agent.add_plugin(counter_plugin)

        await agent.plugin_manager.emit_to_plugins("tick", 1)

        agent_handler.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_metadata(self, agent, counter_plugin):
        await agent.add_plugin(counter_plugin)

        metadata = agent.plugin_manager.get_metadata()

        assert metadata["plugins"][0]["name"] == "counter"
        assert metadata["event_routes"] == [{"pattern": "plugin:counter:*", "targets": 2}]

    @pytest.mark.asyncio
    async def test_manager_can_be_built_directly(self, agent):
        manager = PluginManager(agent)

        await manager.add_plugin(CounterPlugin())

        assert manager.get_all_plugins()[0].plugin_manager is manager

    @pytest.mark.asyncio
    async def test_remove_all_plugins(self, agent):
        class Other(Plugin):
            name = "other"

        counter = CounterPlugin()
        other = Other()
        await agent.add_plugin(counter)
        await agent.add_plugin(other)

        await agent.plugin_manager.remove_all_plugins()

        assert agent.get_plugins() == []
        assert counter.status is PluginStatus.STOPPED
        assert other.get_handlers() == {}
        assert agent.plugin_manager.router.get_routes() == []

    @pytest.mark.asyncio
    async def test_unknown_plain_name_is_not_found(self, agent):
        with pytest.raises(PluginNotFoundError):
            await agent.add_plugin("json")

        assert agent.get_plugins() == []
