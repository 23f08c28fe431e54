"""
Test Template Formatter Module
=============================

Unit tests for rendering message templates.
"""

import pytest
from datetime import timedelta
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.exceptions import ConfigError, TemplateError
from core.fields import FieldCollection
from core.message import ChatMessage
from rules.rule import Rule
from rules.templates import (
    MessageFormatter,
    TemplateFunctionRegistry,
    format_duration_units,
    generic_function,
)


@pytest.fixture
def formatter():
    return MessageFormatter(variables={"greeting": "Hi"}, permit_timeout=timedelta(seconds=90))


@pytest.fixture
def message():
    return ChatMessage.privmsg("#test", "!so @bob now", user="alice", tags={"user-id": "42", "color": "#FF0000"})


class TestMessageFormatter:
    """Tests for MessageFormatter."""

    def test_variables_and_message_fields(self, formatter, message):
        out = formatter.format("{{ greeting }} {{ username }} in {{ channel }} ({{ user_id }})", message)
        assert out == "Hi alice in #test (42)"

    def test_permit_timeout(self, formatter):
        assert formatter.format("{{ permitTimeout }}") == "90"

    def test_event_fields(self, formatter):
        out = formatter.format("{{ user }} raided with {{ viewercount }}", fields=FieldCollection({
            "user": "carol", "viewercount": 12,
        }))
        assert out == "carol raided with 12"

    def test_booleans_render_lowercase(self, formatter):
        assert formatter.format("{{ 1 == 1 }}") == "true"
        assert formatter.format("{{ 1 == 2 }}") == "false"

    def test_newlines_collapsed(self, formatter):
        assert formatter.format("a\n   b\n") == "a b"

    def test_arg_function(self, formatter, message):
        assert formatter.format("{{ fixUsername(arg(1)) }}", message) == "bob"

    def test_arg_out_of_range(self, formatter, message):
        with pytest.raises(TemplateError):
            formatter.format("{{ arg(10) }}", message)

    def test_group_function(self, formatter, message):
        rule = Rule(match_message=r"^!so @?(\w+)")
        assert formatter.format("{{ group(1) }}", message, rule) == "bob"

    def test_tag_function(self, formatter, message):
        assert formatter.format("{{ tag('color') }}", message) == "#FF0000"
        assert formatter.format("{{ tag('missing') }}", message) == ""

    def test_parse_error(self, formatter):
        with pytest.raises(TemplateError):
            formatter.format("{{ unclosed")

    def test_validate(self, formatter):
        formatter.validate("{{ username }}")
        with pytest.raises(TemplateError):
            formatter.validate("{% if %}")

    def test_update_config(self, formatter):
        formatter.update_config({"greeting": "Hello"}, timedelta(seconds=5))
        assert formatter.format("{{ greeting }} {{ permitTimeout }}") == "Hello 5"

    def test_callable(self, formatter, message):
        assert formatter("{{ username }}", message, None, None) == "alice"


class TestTemplateFunctionRegistry:
    """Tests for the template function registry."""

    def test_duplicate_registration(self):
        registry = TemplateFunctionRegistry()
        registry.register("shout", generic_function(str.upper))
        with pytest.raises(ConfigError):
            registry.register("shout", generic_function(str.upper))

    def test_custom_function(self):
        registry = TemplateFunctionRegistry()
        registry.register("shout", generic_function(str.upper))
        formatter = MessageFormatter(functions=registry)
        assert formatter.format("{{ shout('hey') }}") == "HEY"


class TestFormatDuration:
    """Tests for the formatDuration helper."""

    def test_all_units(self):
        assert format_duration_units(3725, "hours", "minutes", "seconds") == "1 hours, 2 minutes, 5 seconds"

    def test_omitted_units(self):
        assert format_duration_units(3725, "hours", "minutes", "") == "1 hours, 2 minutes"

    def test_timedelta(self):
        assert format_duration_units(timedelta(minutes=2), "", "minutes") == "2 minutes"
