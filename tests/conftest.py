"""
Shared test fixtures for dank-runtime tests.

This module provides:
- Settings with built-in tools disabled
- A fake monotonic clock and a recording sleep for the executor
- Sample tool definitions and plugin classes
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from dank_runtime.agent import Agent
from dank_runtime.callbacks import CallbackRegistry
from dank_runtime.config import AgentConfig, Settings
from dank_runtime.plugins import Plugin
from dank_runtime.tools import ToolExecutor, ToolRegistry

AGENT_ID = "6f1c2b1e-3d4a-4c5b-8e6f-7a8b9c0d1e2f"


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> AsyncMock:
    """Backoff sleep that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


# =============================================================================
# Tools
# =============================================================================


def make_tool(handler: Any = None, **overrides: Any) -> dict[str, Any]:
    """Create a tool definition mapping."""
    definition: dict[str, Any] = {
        "description": "Echo the given text back",
        "parameters": {"text": {"type": "string", "required": True}},
        "handler": handler or (lambda params: params["text"]),
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def executor(registry: ToolRegistry, clock: FakeClock, sleep: AsyncMock) -> ToolExecutor:
    return ToolExecutor(registry, clock=clock, sleep=sleep)


# =============================================================================
# Agents
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(agent=AgentConfig(enable_builtin_tools=False))


@pytest.fixture
def callbacks() -> CallbackRegistry:
    return CallbackRegistry()


@pytest.fixture
def agent(settings: Settings, callbacks: CallbackRegistry) -> Agent:
    return Agent("test-agent", settings=settings, agent_id=AGENT_ID, callbacks=callbacks)


# =============================================================================
# Plugins
# =============================================================================


class CounterPlugin(Plugin):
    """Plugin with one tool, one handler and counted lifecycle hooks."""

    name = "counter"
    version = "2.0.0"

    def __init__(self, config=None, **kwargs):
        super().__init__(config, **kwargs)
        self.start_calls = 0
        self.stop_calls = 0
        self.received: list[Any] = []
        self.register_tool(
            "increment",
            {
                "description": "Increment the shared counter",
                "parameters": {"by": {"type": "integer", "default": 1}},
                "handler": self.increment,
            },
        )
        self.on("request_output", self.record)

    def increment(self, params):
        self.set_state("count", self.get_state("count", 0) + params["by"])
        return self.get_state("count")

    def record(self, data):
        self.received.append(data)

    async def on_start(self):
        self.start_calls += 1

    async def on_stop(self):
        self.stop_calls += 1


class FailingStartPlugin(Plugin):
    name = "flaky"

    async def on_start(self):
        raise RuntimeError("connection refused")


@pytest.fixture
def counter_plugin() -> CounterPlugin:
    return CounterPlugin()
