"""
Async concurrency helpers.

The runtime is async-first, but tool handlers may be plain synchronous
callables. Those run in a shared thread pool so a blocking handler cannot
stall the event loop or keep a timeout from firing.
"""

from __future__ import annotations

import asyncio
import inspect
import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, TypeVar

T = TypeVar("T")


def _default_max_workers() -> int:
    # Mirrors ThreadPoolExecutor's default sizing heuristics.
    return min(32, (os.cpu_count() or 1) + 4)


_EXECUTOR = ThreadPoolExecutor(max_workers=_default_max_workers(), thread_name_prefix="dank-tool")


async def run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """
    Run a synchronous callable in the shared thread pool.
    """
    # Polling the concurrent future instead of run_in_executor(): cross-thread
    # wakeups via call_soon_threadsafe() are unreliable in some test harnesses.
    future = _EXECUTOR.submit(partial(func, *args, **kwargs))
    try:
        while True:
            if future.done():
                return future.result()
            await asyncio.sleep(0.001)
    except asyncio.CancelledError:
        future.cancel()
        raise


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def is_async_callable(func: Any) -> bool:
    """True for coroutine functions, including callables with an async ``__call__``."""
    if inspect.iscoroutinefunction(func):
        return True
    call = getattr(func, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


__all__ = ["run_sync", "maybe_await", "is_async_callable"]
