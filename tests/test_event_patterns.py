"""
Tests for event-name pattern matching and naming helpers.
"""
import pytest

from dank_runtime.events import (
    create_plugin_event,
    create_plugin_tool_event,
    create_tool_event,
    extract_plugin_name,
    matches_event_pattern,
    normalize_event_name,
    plugin_namespace,
)


class TestMatchesEventPattern:
    """Test exact and wildcard matching."""

    def test_exact_match(self):
        assert matches_event_pattern("request_output", "request_output")

    def test_pattern_without_wildcard_requires_equality(self):
        assert not matches_event_pattern("X:Y", "X:Y:Z")
        assert not matches_event_pattern("X:Y:Z", "X:Y")

    @pytest.mark.parametrize(
        "event,expected",
        [
            ("X:", True),
            ("X:Y", True),
            ("X:Y:Z", True),
            ("X", False),
            ("XY:Z", False),
            ("Y:X:Z", False),
        ],
    )
    def test_prefix_wildcard(self, event, expected):
        """X:* matches exactly the events starting with 'X:'."""
        assert matches_event_pattern(event, "X:*") is expected

    def test_wildcard_spans_segments(self):
        assert matches_event_pattern("tool:http-server:call:post", "tool:http-server:*")
        assert matches_event_pattern("tool:http-server:call:post", "tool:*:post")

    def test_regex_characters_are_literal(self):
        assert matches_event_pattern("a.b:c", "a.b:*")
        assert not matches_event_pattern("aXb:c", "a.b:*")
        assert matches_event_pattern("price:$5+", "price:$5+")
        assert not matches_event_pattern("price:$55", "price:$5+*x")

    def test_star_alone_matches_everything(self):
        assert matches_event_pattern("anything:at:all", "*")
        assert matches_event_pattern("", "*")


class TestNamingHelpers:
    """Test plugin and tool event naming."""

    def test_normalize_prefixes_plugin_events(self):
        assert normalize_event_name("ready", "postgres") == "plugin:postgres:ready"

    def test_normalize_keeps_qualified_events(self):
        assert normalize_event_name("plugin:redis:ready", "postgres") == "plugin:redis:ready"

    def test_extract_plugin_name(self):
        assert extract_plugin_name("plugin:postgres:query:done") == "postgres"
        assert extract_plugin_name("tool:search:call") is None
        assert extract_plugin_name("plugin:") is None

    def test_create_events(self):
        assert create_plugin_event("p", "e") == "plugin:p:e"
        assert create_tool_event("search", "call") == "tool:search:call"
        assert create_plugin_tool_event("p", "query", "done") == "plugin:p:tool:query:done"

    def test_plugin_namespace_covers_plugin_events(self):
        namespace = plugin_namespace("postgres")

        assert namespace == "plugin:postgres:*"
        assert matches_event_pattern(create_plugin_event("postgres", "ready"), namespace)
        assert not matches_event_pattern(create_plugin_event("postgres2", "ready"), namespace)
