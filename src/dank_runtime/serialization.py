"""
JSON serialization helpers for tool cache keys.

Parameters are serialized in insertion order unless ``canonical`` is set, in
which case mapping keys are sorted recursively. With insertion order,
``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}`` produce different keys.
"""

from __future__ import annotations

import json
from typing import Any


def canonicalize(obj: Any) -> Any:
    """
    Convert nested containers into deterministic JSON-friendly structures.
    """
    if isinstance(obj, dict):
        return {str(k): canonicalize(obj[k]) for k in sorted(obj, key=str)}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted((canonicalize(v) for v in obj), key=repr)
    return obj


def serialize_params(params: Any, canonical: bool = False) -> str:
    """
    Serialize call parameters for use in a cache key.

    Values json cannot encode are rendered with ``str()``.
    """
    value = canonicalize(params) if canonical else params
    return json.dumps(
        value,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


__all__ = ["canonicalize", "serialize_params"]
