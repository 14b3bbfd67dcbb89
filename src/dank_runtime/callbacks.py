"""
Named callback table.

Handlers and tool handlers can be referred to by a stable identifier so a
separate process can rebuild an agent's dispatch table without shipping code.
A reference is either an identifier registered here or an import path of the
form ``"package.module:Qualified.name"``, resolved by importing the module and
walking attributes. References are never evaluated as code.
"""

from __future__ import annotations

import importlib
import inspect
import logging
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from .errors import NotFoundError, ValidationError

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


class CallbackRegistry:
    """
    Maps identifiers to callables.

    Example:
        ```python
        callbacks = CallbackRegistry()

        @callbacks.register_as("audit.log_output")
        async def log_output(data):
            ...

        handler = callbacks.resolve("audit.log_output")
        ```
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, Callable[..., Any]] = {}

    def register(self, identifier: str, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register ``func`` under ``identifier``; re-registering the same callable is a no-op."""
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError("Callback identifier must be a non-empty string")
        if not callable(func):
            raise ValidationError(f"Callback '{identifier}' must be callable", name=identifier)

        existing = self._callbacks.get(identifier)
        if existing is not None and existing is not func:
            raise ValidationError(f"Callback '{identifier}' is already registered", name=identifier)

        self._callbacks[identifier] = func
        return func

    def register_as(self, identifier: str) -> Callable[[F], F]:
        """Decorator form of ``register``."""

        def decorator(func: F) -> F:
            self.register(identifier, func)
            return func

        return decorator

    def unregister(self, identifier: str) -> bool:
        return self._callbacks.pop(identifier, None) is not None

    def resolve(self, ref: str | Callable[..., Any]) -> Callable[..., Any]:
        """
        Turn a reference into a callable.

        Callables are returned unchanged. Strings are looked up as registered
        identifiers first, then as ``module:qualname`` import references.

        Raises:
            NotFoundError: The reference does not name a callable
        """
        if callable(ref):
            return ref
        if not isinstance(ref, str):
            raise ValidationError(f"Callback reference must be a string or callable, got {type(ref).__name__}")

        if ref in self._callbacks:
            return self._callbacks[ref]

        if ":" in ref:
            return _import_reference(ref)

        raise NotFoundError(f"Callback '{ref}' is not registered")

    def reference_for(self, func: Callable[..., Any]) -> str | None:
        """
        A reference that resolves back to ``func``, if one exists.

        Registered identifiers take precedence; otherwise module-level
        functions get an import reference. Bound methods, lambdas and nested
        functions have none.
        """
        for identifier, registered in self._callbacks.items():
            if registered is func:
                return identifier

        if inspect.ismethod(func):
            return None

        module = getattr(func, "__module__", None)
        qualname = getattr(func, "__qualname__", None)
        if not module or not qualname or "<" in qualname:
            return None
        if module == "__main__":
            return None
        return f"{module}:{qualname}"

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._callbacks

    def __iter__(self) -> Iterator[str]:
        return iter(self._callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)


def _import_reference(ref: str) -> Callable[..., Any]:
    module_name, _, qualname = ref.partition(":")
    if not module_name or not qualname:
        raise ValidationError(f"Invalid callback reference '{ref}', expected 'module:qualname'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise NotFoundError(f"Cannot import module '{module_name}' for callback '{ref}'", cause=e) from e

    for part in qualname.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise NotFoundError(f"Callback '{ref}' not found: no attribute '{part}'", cause=e) from e

    if not callable(target):
        raise NotFoundError(f"Callback '{ref}' does not refer to a callable")

    logger.debug(f"Resolved callback reference {ref}")
    return target


# Process-wide table used by agents that are not given their own
default_callbacks = CallbackRegistry()


def callback(identifier: str) -> Callable[[F], F]:
    """Register the decorated function in the process-wide callback table."""
    return default_callbacks.register_as(identifier)


__all__ = [
    "CallbackRegistry",
    "callback",
    "default_callbacks",
]
