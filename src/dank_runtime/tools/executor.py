"""
Tool execution engine.

This module provides:
- ToolExecutor: validated tool calls with per-attempt timeout, retry with
  exponential backoff and a time-boxed result cache
- ExecutionRecord: one entry of the bounded execution history
- CacheEntry: one cached tool result

Timeouts are advisory. When an attempt times out the executor stops waiting,
but the handler keeps running and its eventual outcome is discarded. Handlers
that want to stop early can compare ``context["deadline"]`` against
``asyncio.get_running_loop().time()``.

The cache is not synchronized: concurrent calls with the same tool and
parameters on a cold cache both miss and both run the handler.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from ..concurrency import is_async_callable, maybe_await, run_sync
from ..errors import ToolNotFoundError, ToolTimeoutError
from ..hashing import cache_key
from ..logging import Timer, ToolExecutionLog, get_logger, truncate_for_log
from .registry import ToolDefinition, ToolRegistry
from .validation import validate_parameters

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class ExecutionRecord:
    """One tool execution, successful or not."""

    id: str
    tool_name: str
    parameters: Any
    result: Any
    duration_ms: float
    status: Literal["success", "error"]
    error: str | None = None
    attempts: int = 1
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CacheEntry:
    result: Any
    timestamp: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.timestamp < ttl


class ToolExecutor:
    """
    Executes registered tools.

    Example:
        ```python
        executor = ToolExecutor(registry)
        result = await executor.execute("echo", {"text": "hi"})

        stats = executor.get_stats()
        print(stats["overall"]["success_rate"])
        ```

    Args:
        registry: Registry the tools are looked up in
        history_limit: Maximum number of execution records kept (oldest evicted)
        backoff_base: Seconds slept after the first failed attempt; doubled
            after each further failure
        canonical_cache_keys: Sort parameter keys before building cache keys
        clock: Monotonic clock used for cache freshness
        sleep: Coroutine function used for backoff delays
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        history_limit: int = 1000,
        backoff_base: float = 1.0,
        canonical_cache_keys: bool = False,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.registry = registry
        self.backoff_base = backoff_base
        self.canonical_cache_keys = canonical_cache_keys
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._history: deque[ExecutionRecord] = deque(maxlen=history_limit)
        self._cache: dict[str, CacheEntry] = {}

    async def execute(
        self,
        tool_name: str,
        params: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Execute a tool.

        Order of operations: lookup, cache check, parameter validation, then
        up to ``retries + 1`` attempts each bounded by the tool's timeout.

        Args:
            tool_name: Registered tool name
            params: Call parameters
            context: Caller context passed to the handler as its second argument

        Returns:
            The handler's result (or the cached result)

        Raises:
            ToolNotFoundError: Unknown tool
            ToolValidationError: Parameters violate the tool's parameter specs
            ToolTimeoutError: Last attempt timed out
            Exception: Whatever the handler raised on its last attempt
        """
        tool = self.registry.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name=tool_name)

        params = {} if params is None else params
        execution_id = str(uuid.uuid4())
        timer = Timer()

        key: str | None = None
        if tool.cache_enabled:
            key = cache_key(tool_name, params, canonical=self.canonical_cache_keys)
            entry = self._cache.get(key)
            if entry is not None and entry.is_fresh(self._clock(), tool.cache_ttl):
                logger.log_cache_hit(key)
                return entry.result
            logger.log_cache_miss(key)

        attempts = 0
        try:
            call_params = validate_parameters(tool, params)
            attempts = tool.retries + 1
            result, attempts = await self._execute_with_retries(tool, call_params, context or {}, execution_id)
        except Exception as e:
            self._record(execution_id, tool, params, None, timer.stop(), attempts, error=e)
            raise

        if key is not None:
            self._cache[key] = CacheEntry(result=result, timestamp=self._clock())

        self._record(execution_id, tool, params, result, timer.stop(), attempts)
        return result

    async def _execute_with_retries(
        self,
        tool: ToolDefinition,
        params: dict[str, Any],
        context: Mapping[str, Any],
        execution_id: str,
    ) -> tuple[Any, int]:
        last_error: Exception | None = None

        for attempt in range(tool.retries + 1):
            try:
                result = await self._execute_with_timeout(tool, params, context, execution_id, attempt)
                return result, attempt + 1
            except Exception as e:
                last_error = e
                if attempt < tool.retries:
                    delay = self.backoff_base * (2**attempt)
                    logger.warning(
                        f"Tool '{tool.name}' attempt {attempt + 1} failed, retrying in {delay}s",
                        tool=tool.name,
                        execution_id=execution_id,
                        error=truncate_for_log(str(e)),
                    )
                    await self._sleep(delay)

        assert last_error is not None
        raise last_error

    async def _execute_with_timeout(
        self,
        tool: ToolDefinition,
        params: dict[str, Any],
        context: Mapping[str, Any],
        execution_id: str,
        attempt: int,
    ) -> Any:
        loop = asyncio.get_running_loop()
        call_context = {
            **context,
            "execution_id": execution_id,
            "attempt": attempt,
            "deadline": loop.time() + tool.timeout,
        }

        task = asyncio.ensure_future(self._invoke(tool, params, call_context))
        try:
            done, _ = await asyncio.wait({task}, timeout=tool.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        # The handler keeps running; its outcome is dropped when it arrives.
        task.add_done_callback(_discard_outcome)
        raise ToolTimeoutError(timeout=tool.timeout, tool_name=tool.name)

    async def _invoke(self, tool: ToolDefinition, params: dict[str, Any], context: dict[str, Any]) -> Any:
        args: tuple[Any, ...] = (params, context) if tool.accepts_context else (params,)
        if is_async_callable(tool.handler):
            return await tool.handler(*args)
        return await maybe_await(await run_sync(tool.handler, *args))

    def _record(
        self,
        execution_id: str,
        tool: ToolDefinition,
        params: Any,
        result: Any,
        duration_ms: float,
        attempts: int,
        error: Exception | None = None,
    ) -> None:
        record = ExecutionRecord(
            id=execution_id,
            tool_name=tool.name,
            parameters=params,
            result=result if error is None else None,
            duration_ms=duration_ms,
            status="success" if error is None else "error",
            error=str(error) if error is not None else None,
            attempts=attempts,
        )
        self._history.append(record)
        logger.log_tool_execution(
            ToolExecutionLog(
                execution_id=execution_id,
                tool_name=tool.name,
                duration_ms=duration_ms,
                attempts=attempts,
                success=record.success,
                error=truncate_for_log(record.error) if record.error else None,
            )
        )

    def get_history(self, limit: int | None = None, tool_name: str | None = None) -> list[ExecutionRecord]:
        """Execution records, oldest first, optionally filtered and truncated to the newest ``limit``."""
        records = [r for r in self._history if tool_name is None or r.tool_name == tool_name]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def get_stats(self) -> dict[str, Any]:
        """
        Aggregate statistics over the retained history.

        Returns:
            ``{"overall": {...}, "by_tool": {name: {...}}}``; ``success_rate``
            is a percentage.
        """
        total = len(self._history)
        successful = sum(1 for r in self._history if r.success)
        total_duration = sum(r.duration_ms for r in self._history)

        by_tool: dict[str, dict[str, Any]] = {}
        for record in self._history:
            stats = by_tool.setdefault(
                record.tool_name,
                {"total": 0, "successful": 0, "failed": 0, "avg_duration_ms": 0.0, "_duration": 0.0},
            )
            stats["total"] += 1
            if record.success:
                stats["successful"] += 1
            else:
                stats["failed"] += 1
            stats["_duration"] += record.duration_ms

        for stats in by_tool.values():
            stats["avg_duration_ms"] = round(stats.pop("_duration") / stats["total"], 2)

        return {
            "overall": {
                "total": total,
                "successful": successful,
                "failed": total - successful,
                "success_rate": (successful / total) * 100 if total else 0.0,
                "avg_duration_ms": round(total_duration / total, 2) if total else 0.0,
            },
            "by_tool": by_tool,
        }

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_history(self) -> None:
        self._history.clear()


def _discard_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


__all__ = [
    "ToolExecutor",
    "ExecutionRecord",
    "CacheEntry",
]
