"""
Hashing utilities for cache keys.
"""

from __future__ import annotations

from typing import Any

from blake3 import blake3

from .serialization import serialize_params


def compute_hash(data: str | bytes, truncate: int | None = None) -> str:
    """
    Compute a blake3 hex digest.

    Args:
        data: Input data to hash (string or bytes)
        truncate: Truncate output to N characters (for shorter keys)
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    result = blake3(data).hexdigest()
    return result[:truncate] if truncate else result


def cache_key(tool_name: str, params: Any, canonical: bool = False) -> str:
    """
    Generate the cache key for a tool call.

    The tool name stays readable; the serialized parameters are hashed.

    Args:
        tool_name: Registered tool name
        params: Call parameters as given by the caller
        canonical: Sort mapping keys before serializing
    """
    return f"{tool_name}:{compute_hash(serialize_params(params, canonical=canonical))}"


__all__ = ["compute_hash", "cache_key"]
