"""
Built-in tools available to every agent.

Each entry of ``BUILTIN_TOOLS`` is a definition mapping accepted by
``ToolRegistry.register``. File tools only touch paths inside the current
working directory.
"""

from __future__ import annotations

import base64
import json
import math
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiohttp

from ..errors import ToolExecutionError

USER_AGENT = "Dank-Agent/1.0"
DUCKDUCKGO_URL = "https://api.duckduckgo.com/"

FILE_ENCODINGS = ["utf8", "ascii", "base64", "binary"]


# =============================================================================
# Web
# =============================================================================


async def http_request(params: dict[str, Any]) -> dict[str, Any]:
    url = params["url"]
    timeout = params["timeout"]
    headers = {"User-Agent": USER_AGENT, **(params.get("headers") or {})}
    body = params.get("data")

    try:
        async with aiohttp.ClientSession() as s:
            async with s.request(
                params["method"],
                url,
                headers=headers,
                json=body,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as r:
                text = await r.text()
                try:
                    data: Any = json.loads(text) if text else None
                except json.JSONDecodeError:
                    data = text
                return {
                    "status": r.status,
                    "status_text": r.reason,
                    "headers": dict(r.headers),
                    "data": data,
                    "success": 200 <= r.status < 300,
                }
    except TimeoutError as e:
        raise ToolExecutionError(f"Request timeout after {timeout}s", tool_name="http_request", cause=e) from e
    except aiohttp.ClientError as e:
        raise ToolExecutionError(f"HTTP request failed: {e}", tool_name="http_request", cause=e) from e


async def web_search(params: dict[str, Any]) -> dict[str, Any]:
    query = params["query"]
    query_params = {
        "q": query,
        "format": params["format"],
        "no_html": "1",
        "skip_disambig": "1",
    }

    try:
        async with aiohttp.ClientSession() as s:
            async with s.get(
                DUCKDUCKGO_URL,
                params=query_params,
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=10),
            ) as r:
                if r.status != 200:
                    raise ToolExecutionError(f"Web search failed: HTTP {r.status}", tool_name="web_search")
                data = await r.json(content_type=None)
    except (TimeoutError, aiohttp.ClientError) as e:
        raise ToolExecutionError(f"Web search failed: {e}", tool_name="web_search", cause=e) from e

    results = data.get("Results") or []
    related = data.get("RelatedTopics") or []
    return {
        "query": query,
        "abstract": data.get("Abstract") or None,
        "abstract_text": data.get("AbstractText") or None,
        "abstract_source": data.get("AbstractSource") or None,
        "abstract_url": data.get("AbstractURL") or None,
        "related_topics": related,
        "results": results,
        "type": data.get("Type") or "unknown",
        "has_results": bool(data.get("Abstract") or results or related),
    }


# =============================================================================
# Files
# =============================================================================


def _confined_path(file_path: str, tool_name: str) -> Path:
    root = Path.cwd().resolve()
    resolved = Path(file_path).resolve()
    if not resolved.is_relative_to(root):
        raise ToolExecutionError("Access denied: Path outside working directory", tool_name=tool_name)
    return resolved


def read_file(params: dict[str, Any]) -> dict[str, Any]:
    file_path = params["file_path"]
    encoding = params["encoding"]
    max_size = params["max_size"]

    path = _confined_path(file_path, "read_file")
    if not path.is_file():
        raise ToolExecutionError(f"Failed to read file: File not found: {file_path}", tool_name="read_file")

    stats = path.stat()
    if stats.st_size > max_size:
        raise ToolExecutionError(
            f"Failed to read file: File too large: {stats.st_size} bytes (max: {max_size})",
            tool_name="read_file",
        )

    raw = path.read_bytes()
    try:
        content = _decode(raw, encoding)
    except UnicodeDecodeError as e:
        raise ToolExecutionError(f"Failed to read file: {e}", tool_name="read_file", cause=e) from e

    return {
        "file_path": str(path),
        "size": stats.st_size,
        "encoding": encoding,
        "content": content,
        "last_modified": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
    }


def write_file(params: dict[str, Any]) -> dict[str, Any]:
    file_path = params["file_path"]
    encoding = params["encoding"]

    path = _confined_path(file_path, "write_file")
    try:
        data = _encode(params["content"], encoding)
        if params["create_dirs"]:
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except (OSError, UnicodeEncodeError, ValueError) as e:
        raise ToolExecutionError(f"Failed to write file: {e}", tool_name="write_file", cause=e) from e

    return {
        "file_path": str(path),
        "size": path.stat().st_size,
        "encoding": encoding,
        "created": datetime.now(timezone.utc).isoformat(),
    }


def _decode(raw: bytes, encoding: str) -> str:
    if encoding == "base64":
        return base64.b64encode(raw).decode("ascii")
    if encoding == "binary":
        return raw.decode("latin-1")
    return raw.decode("ascii" if encoding == "ascii" else "utf-8")


def _encode(content: str, encoding: str) -> bytes:
    if encoding == "base64":
        return base64.b64decode(content, validate=True)
    if encoding == "binary":
        return content.encode("latin-1")
    return content.encode("ascii" if encoding == "ascii" else "utf-8")


# =============================================================================
# Utility
# =============================================================================


def _json_type(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if value is None:
        return "null"
    return "string"


def parse_json(params: dict[str, Any]) -> dict[str, Any]:
    json_string = params["json_string"]

    try:
        parsed = json.loads(json_string)
        cleaned = False
    except json.JSONDecodeError as e:
        if params["strict"]:
            raise ToolExecutionError(f"JSON parsing failed: {e}", tool_name="parse_json", cause=e) from e
        try:
            parsed = json.loads(re.sub(r"[\n\r\t]", "", json_string).strip())
            cleaned = True
        except json.JSONDecodeError:
            raise ToolExecutionError(f"JSON parsing failed: {e}", tool_name="parse_json", cause=e) from e

    result = {
        "success": True,
        "data": parsed,
        "type": _json_type(parsed),
        "size": len(json.dumps(parsed, separators=(",", ":"))),
    }
    if cleaned:
        result["cleaned"] = True
    return result


POSITIVE_WORDS = (
    "good", "great", "excellent", "amazing", "wonderful",
    "fantastic", "awesome", "brilliant", "perfect", "outstanding",
)
NEGATIVE_WORDS = (
    "bad", "terrible", "awful", "horrible", "disappointing",
    "poor", "worst", "hate", "dislike", "fail",
)


def analyze_text(params: dict[str, Any]) -> dict[str, Any]:
    text: str = params["text"]
    result: dict[str, Any] = {
        "text": text[:100] + ("..." if len(text) > 100 else ""),
        "length": len(text),
    }

    if params["include_stats"]:
        words = text.split()
        sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
        paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]
        word_count = len(words)

        if word_count > 100:
            complexity = "high"
        elif word_count > 50:
            complexity = "medium"
        else:
            complexity = "low"

        result["stats"] = {
            "characters": len(text),
            "characters_no_spaces": len(re.sub(r"\s", "", text)),
            "words": word_count,
            "sentences": len(sentences),
            "paragraphs": len(paragraphs),
            "average_words_per_sentence": round(word_count / len(sentences), 1) if sentences else 0,
            # 200 words per minute
            "reading_time": math.ceil(word_count / 200),
            "complexity": complexity,
        }

    if params["include_sentiment"]:
        lower = text.lower()
        positive = sum(1 for word in POSITIVE_WORDS if word in lower)
        negative = sum(1 for word in NEGATIVE_WORDS if word in lower)

        if positive > negative:
            label = "positive"
        elif negative > positive:
            label = "negative"
        else:
            label = "neutral"

        result["sentiment"] = {
            "score": positive - negative,
            "label": label,
            "positive_words": positive,
            "negative_words": negative,
            "confidence": min(0.9, max(0.1, abs(positive - negative) / 10)),
        }

    return result


_CUSTOM_TOKENS = (
    ("YYYY", "%Y"),
    ("MM", "%m"),
    ("DD", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
)


def get_current_time(params: dict[str, Any]) -> dict[str, Any]:
    tz_name = params["timezone"]
    output_format = params["format"]

    try:
        tz = timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ToolExecutionError(f"Unknown timezone: {tz_name}", tool_name="get_current_time", cause=e) from e

    now = datetime.now(timezone.utc)
    local = now.astimezone(tz)

    if output_format == "unix":
        formatted: Any = int(now.timestamp())
    elif output_format == "readable":
        formatted = local.strftime("%m/%d/%Y, %I:%M:%S %p")
    elif output_format == "custom":
        pattern = params["custom_format"].replace("%", "%%")
        for token, directive in _CUSTOM_TOKENS:
            pattern = pattern.replace(token, directive)
        formatted = local.strftime(pattern)
    else:
        formatted = local.isoformat()

    return {
        "timestamp": now.isoformat(),
        "timezone": tz_name,
        "format": output_format,
        "formatted": formatted,
    }


BUILTIN_TOOLS: dict[str, dict[str, Any]] = {
    "http_request": {
        "description": "Make HTTP requests to external APIs and websites",
        "category": "web",
        "parameters": {
            "url": {"type": "string", "description": "The URL to make the request to", "required": True},
            "method": {
                "type": "string",
                "description": "HTTP method to use",
                "enum": ["GET", "POST", "PUT", "DELETE", "PATCH"],
                "default": "GET",
            },
            "headers": {"type": "object", "description": "HTTP headers to include", "default": {}},
            "data": {"type": "object", "description": "JSON request body"},
            "timeout": {
                "type": "number",
                "description": "Request timeout in seconds",
                "default": 10,
                "min": 1,
                "max": 60,
            },
        },
        "timeout": 15,
        "retries": 2,
        "handler": http_request,
    },
    "web_search": {
        "description": "Search the web for information using DuckDuckGo",
        "category": "web",
        "parameters": {
            "query": {"type": "string", "description": "Search query", "required": True, "min": 1, "max": 500},
            "format": {"type": "string", "description": "Response format", "enum": ["json"], "default": "json"},
        },
        "cacheable": True,
        "cache_ttl": 300,
        "handler": web_search,
    },
    "read_file": {
        "description": "Read contents of a file",
        "category": "file",
        "parameters": {
            "file_path": {"type": "string", "description": "Path to the file to read", "required": True},
            "encoding": {"type": "string", "description": "File encoding", "enum": FILE_ENCODINGS, "default": "utf8"},
            "max_size": {
                "type": "integer",
                "description": "Maximum file size in bytes",
                "default": 1048576,
                "min": 1,
                "max": 10485760,
            },
        },
        "handler": read_file,
    },
    "write_file": {
        "description": "Write content to a file",
        "category": "file",
        "parameters": {
            "file_path": {"type": "string", "description": "Path to the file to write", "required": True},
            "content": {"type": "string", "description": "Content to write to the file", "required": True},
            "encoding": {"type": "string", "description": "File encoding", "enum": FILE_ENCODINGS, "default": "utf8"},
            "create_dirs": {
                "type": "boolean",
                "description": "Create parent directories if they don't exist",
                "default": True,
            },
        },
        "handler": write_file,
    },
    "parse_json": {
        "description": "Parse a JSON string into a structured value",
        "category": "utility",
        "parameters": {
            "json_string": {"type": "string", "description": "JSON string to parse", "required": True},
            "strict": {"type": "boolean", "description": "Use strict JSON parsing", "default": True},
        },
        "handler": parse_json,
    },
    "analyze_text": {
        "description": "Analyze text for various metrics and properties",
        "category": "text",
        "parameters": {
            "text": {"type": "string", "description": "Text to analyze", "required": True, "min": 1, "max": 50000},
            "include_stats": {"type": "boolean", "description": "Include detailed statistics", "default": True},
            "include_sentiment": {
                "type": "boolean",
                "description": "Include basic sentiment analysis",
                "default": False,
            },
        },
        "handler": analyze_text,
    },
    "get_current_time": {
        "description": "Get current date and time in various formats",
        "category": "utility",
        "parameters": {
            "timezone": {"type": "string", "description": 'Timezone (e.g. "America/New_York", "UTC")', "default": "UTC"},
            "format": {
                "type": "string",
                "description": "Output format",
                "enum": ["iso", "unix", "readable", "custom"],
                "default": "iso",
            },
            "custom_format": {
                "type": "string",
                "description": 'Custom date format (when format is "custom")',
                "default": "YYYY-MM-DD HH:mm:ss",
            },
        },
        "handler": get_current_time,
    },
}


__all__ = [
    "BUILTIN_TOOLS",
    "http_request",
    "web_search",
    "read_file",
    "write_file",
    "parse_json",
    "analyze_text",
    "get_current_time",
]
