"""Tests for the async concurrency helpers."""

import threading

import pytest

from dank_runtime.concurrency import is_async_callable, maybe_await, run_sync


class TestRunSync:
    """Tests for run_sync."""

    @pytest.mark.asyncio
    async def test_runs_in_worker_thread(self) -> None:
        caller = threading.get_ident()

        worker = await run_sync(threading.get_ident)

        assert worker != caller

    @pytest.mark.asyncio
    async def test_passes_arguments(self) -> None:
        assert await run_sync(int, "ff", base=16) == 255

    @pytest.mark.asyncio
    async def test_propagates_exceptions(self) -> None:
        def fail():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await run_sync(fail)


class TestHelpers:
    """Tests for maybe_await and is_async_callable."""

    @pytest.mark.asyncio
    async def test_maybe_await(self) -> None:
        async def coro():
            return 1

        assert await maybe_await(coro()) == 1
        assert await maybe_await(2) == 2

    def test_is_async_callable(self) -> None:
        async def coro():
            pass

        class AsyncCallable:
            async def __call__(self):
                pass

        assert is_async_callable(coro)
        assert is_async_callable(AsyncCallable())
        assert not is_async_callable(print)
        assert not is_async_callable(lambda: None)
