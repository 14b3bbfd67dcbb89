"""
Tests for the Agent host object.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import AGENT_ID, CounterPlugin, make_tool
from dank_runtime import Agent, Settings
from dank_runtime.callbacks import CallbackRegistry, default_callbacks
from dank_runtime.config import AgentConfig, ExecutorConfig, ToolDefaults
from dank_runtime.errors import InvalidToolError, ToolNotFoundError, ValidationError
from dank_runtime.tools import BUILTIN_TOOLS
from dank_runtime.tools.builtin import parse_json


class TestConstruction:
    """Test agent construction and identity."""

    def test_builtin_tools_registered_by_default(self, callbacks):
        agent = Agent("bot", settings=Settings(), callbacks=callbacks)

        assert {t.name for t in agent.get_tools()} == set(BUILTIN_TOOLS)

    def test_builtin_tools_disabled(self, agent):
        assert agent.get_tools() == []

    def test_builtin_tools_selected_by_settings(self, callbacks):
        settings = Settings(agent=AgentConfig(builtin_tools={"parse_json": True, "web_search": False}))
        agent = Agent("bot", settings=settings, callbacks=callbacks)

        assert [t.name for t in agent.get_tools()] == ["parse_json"]

    def test_settings_reach_registry_and_executor(self, callbacks):
        settings = Settings(
            tools=ToolDefaults(timeout=7),
            executor=ExecutorConfig(backoff_base=0.25, canonical_cache_keys=True),
            agent=AgentConfig(enable_builtin_tools=False),
        )
        agent = Agent("bot", settings=settings, callbacks=callbacks)
        agent.add_tool("echo", make_tool())

        assert agent.tool_registry.get("echo").timeout == 7.0
        assert agent.tool_executor.backoff_base == 0.25
        assert agent.tool_executor.canonical_cache_keys is True

    def test_keeps_an_empty_callback_table(self, settings):
        own = CallbackRegistry()
        agent = Agent("bot", settings=settings, callbacks=own)
        own.register("audit.record", print)

        agent.add_handler("output", "audit.record")

        assert agent.callbacks is own
        assert "audit.record" not in default_callbacks
        assert Agent("bot", settings=settings).callbacks is default_callbacks

    def test_empty_name_rejected(self, settings):
        with pytest.raises(ValidationError):
            Agent("", settings=settings)

    def test_set_id_requires_uuid4(self, agent):
        assert agent.set_id(f"  {AGENT_ID}  ").id == AGENT_ID

        with pytest.raises(ValidationError):
            agent.set_id("not-a-uuid")
        with pytest.raises(ValidationError):
            # version 1 UUID
            agent.set_id("6f1c2b1e-3d4a-1c5b-8e6f-7a8b9c0d1e2f")
        with pytest.raises(ValidationError):
            Agent("bot", settings=Settings(), agent_id="")

    def test_set_environment_merges(self, agent):
        agent.set_environment({"A": "1"}).set_environment({"B": "2", "A": "3"})

        assert agent.environment == {"A": "3", "B": "2"}


class TestHandlers:
    """Test handler registration through the agent."""

    @pytest.mark.asyncio
    async def test_add_handler_and_emit(self, agent):
        handler = AsyncMock()

        assert agent.add_handler("request_output", handler) is agent
        assert await agent.emit("request_output", {"response": "hi"}) == 1
        handler.assert_awaited_once_with({"response": "hi"})

    @pytest.mark.asyncio
    async def test_emit_with_response(self, agent):
        agent.add_handlers(
            {
                "request_output:start": [
                    lambda data: {"prompt": data["prompt"] + "!"},
                    lambda data: {"seen": data["prompt"]},
                ]
            }
        )

        result = await agent.emit_with_response("request_output:start", {"prompt": "hi"})

        assert result == {"prompt": "hi!", "seen": "hi!"}

    @pytest.mark.asyncio
    async def test_handler_by_identifier(self, agent, callbacks):
        received = []
        callbacks.register("audit.record", received.append)

        agent.add_handler("output", "audit.record")
        await agent.emit("output", 1)

        assert received == [1]
        assert agent.handler_refs() == {"output": ["audit.record"]}

    def test_handler_refs(self, agent):
        agent.add_handlers({"a": parse_json, "b": [lambda data: None, "dank_runtime.tools.builtin:parse_json"]})

        assert agent.handler_refs() == {
            "a": ["dank_runtime.tools.builtin:parse_json"],
            "b": [None, "dank_runtime.tools.builtin:parse_json"],
        }

    def test_unknown_identifier(self, agent):
        with pytest.raises(Exception, match="not registered"):
            agent.add_handler("output", "missing.handler")


class TestTools:
    """Test tool management through the agent."""

    @pytest.mark.asyncio
    async def test_add_and_use_tool(self, agent):
        seen = {}

        def handler(params, context):
            seen.update(context)
            return params["text"]

        agent.add_tool("echo", make_tool(handler=handler))

        assert await agent.use_tool("echo", {"text": "hi"}, {"request_id": "r1"}) == "hi"
        assert seen["agent_id"] == AGENT_ID
        assert seen["agent_name"] == "test-agent"
        assert seen["request_id"] == "r1"
        assert "timestamp" in seen

    @pytest.mark.asyncio
    async def test_tool_handler_by_identifier(self, agent, callbacks):
        callbacks.register("tools.upper", lambda params: params["text"].upper())

        agent.add_tool("upper", make_tool(handler="tools.upper"))

        assert await agent.use_tool("upper", {"text": "hi"}) == "HI"

    def test_add_tools(self, agent):
        agent.add_tools({"a": make_tool(category="x"), "b": make_tool(category="y")})

        assert [t.name for t in agent.get_tools_by_category("x")] == ["a"]
        with pytest.raises(InvalidToolError):
            agent.add_tool("a", make_tool())

    @pytest.mark.asyncio
    async def test_unknown_tool(self, agent):
        with pytest.raises(ToolNotFoundError):
            await agent.use_tool("missing")

    @pytest.mark.asyncio
    async def test_tool_stats(self, agent):
        agent.add_tool("echo", make_tool())
        await agent.use_tool("echo", {"text": "x"})

        assert agent.get_tool_stats()["overall"]["total"] == 1

    def test_schemas(self, agent):
        agent.add_tool("echo", make_tool())

        assert agent.get_function_schema()[0]["name"] == "echo"
        assert agent.get_openai_tool_schema()[0]["type"] == "function"

    def test_configure_builtin_tools(self, agent):
        agent.register_builtin_tools()
        agent.add_tool("custom", make_tool())

        agent.configure_builtin_tools({"parse_json": True, "analyze_text": True, "read_file": False, "nope": True})

        assert sorted(t.name for t in agent.get_tools()) == ["analyze_text", "custom", "parse_json"]


class TestPlugins:
    """Test plugin helpers on the agent."""

    def test_no_plugins_without_manager(self, agent):
        assert agent.get_plugin("anything") is None
        assert agent.get_plugins() == []

    @pytest.mark.asyncio
    async def test_lifecycle_helpers_without_plugins(self, agent):
        assert await agent.start_plugins() is agent
        assert await agent.stop_plugins() is agent
        assert await agent.remove_plugin("missing") is agent

    @pytest.mark.asyncio
    async def test_fluent_add_plugin(self, agent):
        result = await agent.add_plugin(CounterPlugin())

        assert result is agent
        assert [p.name for p in agent.get_plugins()] == ["counter"]


class TestConfig:
    """Test exporting and rebuilding agents."""

    def test_to_config_requires_id(self, settings, callbacks):
        agent = Agent("bot", settings=settings, callbacks=callbacks)

        with pytest.raises(ValidationError, match="set_id"):
            agent.to_config()

    @pytest.mark.asyncio
    async def test_to_config(self, agent, callbacks):
        callbacks.register("audit.record", MagicMock())
        agent.add_handler("output", "audit.record")
        agent.add_tool("echo", make_tool())
        agent.set_environment({"MODE": "test"})
        await agent.add_plugin(CounterPlugin())

        config = agent.to_config()

        assert config["name"] == "test-agent"
        assert config["id"] == AGENT_ID
        assert config["environment"] == {"MODE": "test"}
        assert config["handlers"]["output"] == ["audit.record"]
        assert config["handlers"]["request_output"] == [None]
        assert {t["name"] for t in config["tools"]} == {"echo", "plugin:counter:increment"}
        assert all("handler" not in t for t in config["tools"])
        assert config["plugins"][0]["name"] == "counter"

    @pytest.mark.asyncio
    async def test_from_config_restores_handlers(self, agent, callbacks, settings):
        received = []
        callbacks.register("audit.record", received.append)
        agent.add_handler("output", "audit.record")
        agent.add_handler("output", lambda data: None)
        agent.set_environment({"MODE": "test"})

        rebuilt = Agent.from_config(agent.to_config(), settings=settings, callbacks=callbacks)
        await rebuilt.emit("output", 7)

        assert rebuilt.id == AGENT_ID
        assert rebuilt.environment == {"MODE": "test"}
        assert rebuilt.handler_refs() == {"output": ["audit.record"]}
        assert received == [7]
