"""
Event router for plugin-to-agent and plugin-to-plugin delivery.

A route binds a pattern to an ordered list of targets. A target is any
callable taking ``(event_name, data)``; coroutine functions are awaited.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from ..concurrency import maybe_await
from ..errors import HandlerError
from ..logging import get_logger
from .patterns import matches_event_pattern

RouteTarget = Callable[[str, Any], Any]

logger = get_logger(__name__)


class EventRouter:
    def __init__(self):
        self._routes: dict[str, list[RouteTarget]] = {}

    def route(self, pattern: str, target: RouteTarget) -> None:
        self._routes.setdefault(pattern, []).append(target)

    def unroute(self, pattern: str, target: RouteTarget) -> bool:
        """Remove one registration of ``target``; the pattern entry is dropped when empty."""
        targets = self._routes.get(pattern)
        if not targets or target not in targets:
            return False
        targets.remove(target)
        if not targets:
            del self._routes[pattern]
        return True

    def targets_for(self, event_name: str) -> list[RouteTarget]:
        matching: list[RouteTarget] = []
        for pattern, targets in self._routes.items():
            if matches_event_pattern(event_name, pattern):
                matching.extend(targets)
        return matching

    async def emit(self, event_name: str, data: Any = None) -> int:
        """
        Deliver an event to every target routed for it.

        Targets run concurrently; a failing target is logged and the rest
        still receive the event.

        Returns:
            Number of targets the event was delivered to
        """
        targets = self.targets_for(event_name)
        if targets:
            await asyncio.gather(*(self._deliver(target, event_name, data) for target in targets))
        return len(targets)

    async def _deliver(self, target: RouteTarget, event_name: str, data: Any) -> None:
        try:
            await maybe_await(target(event_name, data))
        except Exception as e:
            logger.log_error(HandlerError(event_name, e), message=f"Route delivery failed for '{event_name}'")

    def get_routes(self) -> list[dict[str, Any]]:
        return [{"pattern": pattern, "targets": len(targets)} for pattern, targets in self._routes.items()]

    def clear(self) -> None:
        self._routes.clear()


__all__ = ["EventRouter", "RouteTarget"]
