"""
Tests for the built-in tools.
"""
import base64
import re
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from dank_runtime.errors import ToolExecutionError, ToolValidationError
from dank_runtime.tools import BUILTIN_TOOLS, ToolExecutor, ToolRegistry


@pytest.fixture
def builtin_executor(sleep):
    registry = ToolRegistry()
    for name, definition in BUILTIN_TOOLS.items():
        registry.register(name, definition)
    return ToolExecutor(registry, sleep=sleep)


class TestDefinitions:
    """Test that every built-in definition is valid."""

    def test_all_register(self):
        registry = ToolRegistry()
        for name, definition in BUILTIN_TOOLS.items():
            registry.register(name, definition)

        assert set(registry.names) == {
            "http_request",
            "web_search",
            "read_file",
            "write_file",
            "parse_json",
            "analyze_text",
            "get_current_time",
        }
        assert registry.get("web_search").cache_enabled
        assert registry.get("http_request").retries == 2


class TestFileTools:
    """Test read_file and write_file inside the working directory."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, builtin_executor, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        written = await builtin_executor.execute("write_file", {"file_path": "notes/a.txt", "content": "hello"})
        read = await builtin_executor.execute("read_file", {"file_path": "notes/a.txt"})

        assert written["size"] == 5
        assert (tmp_path / "notes" / "a.txt").read_text() == "hello"
        assert read["content"] == "hello"
        assert read["encoding"] == "utf8"

    @pytest.mark.asyncio
    async def test_base64_round_trip(self, builtin_executor, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        payload = bytes(range(8))

        await builtin_executor.execute(
            "write_file",
            {"file_path": "blob.bin", "content": base64.b64encode(payload).decode(), "encoding": "base64"},
        )

        assert (tmp_path / "blob.bin").read_bytes() == payload

    @pytest.mark.asyncio
    async def test_paths_outside_cwd_denied(self, builtin_executor, tmp_path, monkeypatch):
        workdir = tmp_path / "work"
        workdir.mkdir()
        monkeypatch.chdir(workdir)

        with pytest.raises(ToolExecutionError, match="Access denied"):
            await builtin_executor.execute("read_file", {"file_path": "../secret.txt"})
        with pytest.raises(ToolExecutionError, match="Access denied"):
            await builtin_executor.execute("write_file", {"file_path": str(tmp_path / "x.txt"), "content": "x"})

    @pytest.mark.asyncio
    async def test_missing_file(self, builtin_executor, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ToolExecutionError, match="File not found"):
            await builtin_executor.execute("read_file", {"file_path": "missing.txt"})

    @pytest.mark.asyncio
    async def test_max_size(self, builtin_executor, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "big.txt").write_text("x" * 100)

        with pytest.raises(ToolExecutionError, match="File too large"):
            await builtin_executor.execute("read_file", {"file_path": "big.txt", "max_size": 10})


class TestParseJson:
    """Test parse_json."""

    @pytest.mark.asyncio
    async def test_strict(self, builtin_executor):
        result = await builtin_executor.execute("parse_json", {"json_string": '{"a": [1, 2]}'})

        assert result == {"success": True, "data": {"a": [1, 2]}, "type": "object", "size": 11}

    @pytest.mark.asyncio
    async def test_strict_failure(self, builtin_executor):
        with pytest.raises(ToolExecutionError, match="JSON parsing failed"):
            await builtin_executor.execute("parse_json", {"json_string": '{"a": "x\ny"}'})

    @pytest.mark.asyncio
    async def test_lenient_cleanup(self, builtin_executor):
        result = await builtin_executor.execute("parse_json", {"json_string": '{"a": "x\ny"}', "strict": False})

        assert result["data"] == {"a": "xy"}
        assert result["cleaned"] is True

    @pytest.mark.parametrize(
        "text,kind",
        [("[1]", "array"), ("true", "boolean"), ("1.5", "number"), ('"s"', "string"), ("null", "null")],
    )
    @pytest.mark.asyncio
    async def test_types(self, builtin_executor, text, kind):
        assert (await builtin_executor.execute("parse_json", {"json_string": text}))["type"] == kind


class TestAnalyzeText:
    """Test analyze_text."""

    @pytest.mark.asyncio
    async def test_stats(self, builtin_executor):
        result = await builtin_executor.execute(
            "analyze_text", {"text": "One two three. Four five!\n\nSix seven eight nine?"}
        )

        stats = result["stats"]
        assert stats["words"] == 9
        assert stats["sentences"] == 3
        assert stats["paragraphs"] == 2
        assert stats["average_words_per_sentence"] == 3.0
        assert stats["reading_time"] == 1
        assert stats["complexity"] == "low"
        assert "sentiment" not in result

    @pytest.mark.asyncio
    async def test_sentiment(self, builtin_executor):
        result = await builtin_executor.execute(
            "analyze_text",
            {"text": "A great and wonderful day, not bad", "include_stats": False, "include_sentiment": True},
        )

        assert "stats" not in result
        assert result["sentiment"]["label"] == "positive"
        assert result["sentiment"]["score"] == 1

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, builtin_executor):
        with pytest.raises(ToolValidationError):
            await builtin_executor.execute("analyze_text", {"text": ""})


class TestGetCurrentTime:
    """Test get_current_time."""

    @pytest.mark.asyncio
    async def test_iso_default(self, builtin_executor):
        result = await builtin_executor.execute("get_current_time", {})

        assert result["timezone"] == "UTC"
        assert datetime.fromisoformat(result["formatted"]).utcoffset().total_seconds() == 0

    @pytest.mark.asyncio
    async def test_unix(self, builtin_executor):
        result = await builtin_executor.execute("get_current_time", {"format": "unix"})

        assert isinstance(result["formatted"], int)

    @pytest.mark.asyncio
    async def test_custom(self, builtin_executor):
        result = await builtin_executor.execute(
            "get_current_time", {"format": "custom", "custom_format": "YYYY-MM-DD HH:mm:ss (100%)"}
        )

        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \(100%\)", result["formatted"])

    @pytest.mark.asyncio
    async def test_unknown_timezone(self, builtin_executor):
        with pytest.raises(ToolExecutionError, match="Unknown timezone"):
            await builtin_executor.execute("get_current_time", {"timezone": "Mars/Olympus"})


class TestWebTools:
    """Test the aiohttp-backed tools with a mocked session."""

    @staticmethod
    def mock_session(status=200, text='{"ok": true}', payload=None):
        response = MagicMock()
        response.status = status
        response.reason = "OK"
        response.headers = {"Content-Type": "application/json"}
        response.text = AsyncMock(return_value=text)
        response.json = AsyncMock(return_value=payload)

        request_cm = MagicMock()
        request_cm.__aenter__ = AsyncMock(return_value=response)
        request_cm.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        session.request = MagicMock(return_value=request_cm)
        session.get = MagicMock(return_value=request_cm)

        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        return session_cm, session

    @pytest.mark.asyncio
    async def test_http_request(self, builtin_executor):
        session_cm, session = self.mock_session()

        with patch("dank_runtime.tools.builtin.aiohttp.ClientSession", return_value=session_cm):
            result = await builtin_executor.execute("http_request", {"url": "https://example.com/api"})

        assert result["status"] == 200
        assert result["success"] is True
        assert result["data"] == {"ok": True}
        method, url = session.request.call_args.args
        assert (method, url) == ("GET", "https://example.com/api")

    @pytest.mark.asyncio
    async def test_web_search_is_cached(self, builtin_executor):
        payload = {"Abstract": "Python is a language", "AbstractText": "Python", "RelatedTopics": [], "Type": "A"}
        session_cm, session = self.mock_session(payload=payload)

        with patch("dank_runtime.tools.builtin.aiohttp.ClientSession", return_value=session_cm) as client:
            first = await builtin_executor.execute("web_search", {"query": "python"})
            second = await builtin_executor.execute("web_search", {"query": "python"})

        assert first == second
        assert first["abstract"] == "Python is a language"
        assert first["type"] == "A"
        assert first["has_results"] is True
        assert client.call_count == 1
        assert session.get.call_args.kwargs["params"]["q"] == "python"

    @pytest.mark.asyncio
    async def test_http_errors_are_wrapped(self, builtin_executor):
        session_cm, session = self.mock_session()
        session.request.side_effect = aiohttp.ClientConnectionError("refused")

        with patch("dank_runtime.tools.builtin.aiohttp.ClientSession", return_value=session_cm):
            with pytest.raises(ToolExecutionError, match="HTTP request failed"):
                await builtin_executor.execute("http_request", {"url": "https://example.com"})

        assert session.request.call_count == 3
