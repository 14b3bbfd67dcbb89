"""
Pattern-matching event bus.

Handlers are stored per pattern string in insertion order. Dispatch collects
every handler whose pattern matches the event name, across all registered
patterns, in pattern-registration order then handler-registration order.

Two dispatch modes:
- ``emit``: all matching handlers run concurrently; failures are logged per
  handler and never reach the caller. Returns the dispatch count.
- ``emit_with_response``: handlers run strictly one after another, each
  receiving the accumulator built so far; mapping results are shallow-merged
  into it. Used to rewrite prompts before a model call and responses before
  they reach a caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from ..concurrency import maybe_await
from ..errors import HandlerError, ValidationError
from ..logging import get_logger
from .patterns import matches_event_pattern

EventHandler = Callable[[Any], Any]

logger = get_logger(__name__)


class EventBus:
    """In-process event bus keyed by event pattern.

    Example:
        ```python
        bus = EventBus()
        bus.on("request_output:start", add_system_context)
        bus.on("tool:*", audit)

        data = await bus.emit_with_response("request_output:start", {"prompt": "hi"})
        await bus.emit("tool:search:call", {"query": "python"})
        ```
    """

    def __init__(self, name: str = "bus"):
        self.name = name
        self._handlers: dict[str, list[EventHandler]] = {}

    def on(self, pattern: str, handler: EventHandler) -> EventBus:
        """Append ``handler`` to the ordered list for ``pattern``."""
        if not callable(handler):
            raise ValidationError("Handler must be callable", name=pattern)
        self._handlers.setdefault(pattern, []).append(handler)
        return self

    def off(self, pattern: str, handler: EventHandler) -> bool:
        """Remove one registration of ``handler`` for ``pattern``."""
        handlers = self._handlers.get(pattern)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[pattern]
        return True

    def find_handlers(self, event_name: str) -> list[EventHandler]:
        """All handlers whose pattern matches ``event_name``, in dispatch order."""
        matching: list[EventHandler] = []
        for pattern, handlers in self._handlers.items():
            if matches_event_pattern(event_name, pattern):
                matching.extend(handlers)
        return matching

    async def emit(self, event_name: str, data: Any = None) -> int:
        """
        Broadcast ``data`` to every matching handler.

        Handlers are started in registration order and awaited together. A
        failing handler is logged and does not affect the others.

        Returns:
            Number of handlers the event was dispatched to
        """
        handlers = self.find_handlers(event_name)
        if not handlers:
            return 0

        await asyncio.gather(*(self._invoke(event_name, handler, data) for handler in handlers))

        logger.debug(
            f"Emitted event '{event_name}' to {len(handlers)} handlers",
            bus=self.name,
            event=event_name,
        )
        return len(handlers)

    async def emit_with_response(self, event_name: str, data: Any = None) -> dict[str, Any]:
        """
        Run matching handlers sequentially, chaining their results.

        Each handler receives a shallow copy of the accumulator. A mapping
        result is merged into the accumulator; any other result is ignored. A
        failing handler is logged and skipped, leaving the accumulator as it
        was before that handler ran.

        Args:
            event_name: Event to dispatch
            data: Initial payload. Mappings are copied; ``None`` starts from an
                empty dict; any other value is wrapped as ``{"data": value}``.

        Returns:
            The final accumulator
        """
        accumulator = _initial_accumulator(data)

        for handler in self.find_handlers(event_name):
            try:
                result = await maybe_await(handler(dict(accumulator)))
            except Exception as e:
                self._log_failure(event_name, e)
                continue

            if isinstance(result, Mapping):
                accumulator = {**accumulator, **result}

        return accumulator

    async def _invoke(self, event_name: str, handler: EventHandler, data: Any) -> None:
        try:
            await maybe_await(handler(data))
        except Exception as e:
            self._log_failure(event_name, e)

    def _log_failure(self, event_name: str, error: Exception) -> None:
        logger.log_error(HandlerError(event_name, error), bus=self.name)

    @property
    def patterns(self) -> list[str]:
        return list(self._handlers.keys())

    def handler_count(self, pattern: str | None = None) -> int:
        """Number of registered handlers, overall or for one pattern."""
        if pattern is not None:
            return len(self._handlers.get(pattern, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        self._handlers.clear()

    def __contains__(self, pattern: str) -> bool:
        return pattern in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def _initial_accumulator(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, Mapping):
        return dict(data)
    return {"data": data}


__all__ = ["EventBus", "EventHandler"]
