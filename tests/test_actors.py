"""
Test Actors Module
=================

Unit tests for the bundled actors and the action registry.
"""

import json
import logging
import sys
import pytest
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from actors import register_core_actors
from actors.base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_INT64
from actors.delay import DelayActor
from actors.log import LogActor
from actors.permit import PermitActor
from actors.registry import ActionRegistry
from actors.respond import RespondActor
from actors.script import ScriptActor
from actors.stopexec import StopExecutionActor
from actors.webhook import WebhookActor
from core.exceptions import (
    ActorError,
    ActorNotFoundError,
    DuplicateActorError,
    StopRuleExecution,
    ValidationError,
)
from core.fields import FieldCollection
from core.message import ChatConnection, ChatMessage
from core.timers import TimerStore
from rules.rule import Rule, RuleAction
from rules.templates import MessageFormatter


class RecordingConnection(ChatConnection):
    def __init__(self):
        self.sent = []

    def send_message(self, message):
        self.sent.append(message)


@pytest.fixture
def formatter():
    return MessageFormatter()


@pytest.fixture
def connection():
    return RecordingConnection()


@pytest.fixture
def message():
    return ChatMessage.privmsg("#test", "!hello world", user="alice", tags={"id": "msg-1", "badges": "vip/1"})


def attrs(**values):
    return FieldCollection(values)


class TestRespondActor:
    """Tests for the respond actor."""

    def test_sends_rendered_message(self, formatter, connection, message):
        actor = RespondActor(formatter)
        result = actor.execute(connection, message, Rule(), FieldCollection(), attrs(message="Hi {{ username }}"))

        assert result is False
        assert len(connection.sent) == 1
        assert connection.sent[0].params == ["#test", "Hi alice"]
        assert "reply-parent-msg-id" not in connection.sent[0].tags

    def test_as_reply(self, formatter, connection, message):
        RespondActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(message="x", as_reply=True))
        assert connection.sent[0].tags["reply-parent-msg-id"] == "msg-1"

    def test_to_channel(self, formatter, connection, message):
        RespondActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(message="x", to_channel="other"))
        assert connection.sent[0].channel == "#other"

    def test_fallback(self, formatter, connection, message):
        RespondActor(formatter).execute(
            connection, message, Rule(), FieldCollection(),
            attrs(message="{{ arg(10) }}", fallback="fallback {{ username }}")
        )
        assert connection.sent[0].trailing == "fallback alice"

    def test_render_error_without_fallback(self, formatter, connection, message):
        with pytest.raises(ActorError):
            RespondActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(message="{{ arg(10) }}"))
        assert connection.sent == []

    def test_no_channel(self, formatter, connection):
        with pytest.raises(ActorError):
            RespondActor(formatter).execute(connection, None, Rule(), FieldCollection(), attrs(message="x"))

    def test_event_channel(self, formatter, connection):
        RespondActor(formatter).execute(
            connection, None, Rule(), FieldCollection({"channel": "test", "user": "bob"}),
            attrs(message="Thanks {{ user }}")
        )
        assert connection.sent[0].params == ["#test", "Thanks bob"]


class TestDelayActor:
    """Tests for the delay actor."""

    def test_sleeps_delay(self, connection, message):
        slept = []
        DelayActor(sleep=slept.append).execute(connection, message, Rule(), FieldCollection(), attrs(delay="2s"))
        assert slept == [2.0]

    def test_jitter_bounds(self, connection, message):
        slept = []
        actor = DelayActor(sleep=slept.append)
        for _ in range(20):
            actor.execute(connection, message, Rule(), FieldCollection(), attrs(delay="1s", jitter="500ms"))
        assert all(1.0 <= s <= 1.5 for s in slept)

    def test_no_delay(self, connection, message):
        slept = []
        DelayActor(sleep=slept.append).execute(connection, message, Rule(), FieldCollection(), attrs())
        assert slept == []


class TestStopExecutionActor:
    """Tests for the stopexec actor."""

    def test_stops_when_true(self, formatter, connection, message):
        with pytest.raises(StopRuleExecution) as exc:
            StopExecutionActor(formatter).execute(
                connection, message, Rule(), FieldCollection(), attrs(when="{{ username == 'alice' }}")
            )
        assert exc.value.prevent_cooldown is False

    def test_continues_otherwise(self, formatter, connection, message):
        assert StopExecutionActor(formatter).execute(
            connection, message, Rule(), FieldCollection(), attrs(when="{{ username == 'bob' }}")
        ) is False


class TestLogActor:
    """Tests for the log actor."""

    def test_is_async(self):
        assert LogActor().is_async()

    def test_logs_message(self, formatter, connection, message, caplog):
        with caplog.at_level(logging.INFO, logger="chat_bot"):
            LogActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(message="seen {{ username }}"))
        assert "seen alice" in caplog.text


class TestPermitActor:
    """Tests for the permit actor."""

    def test_grants_permit(self, formatter, connection, message):
        store = TimerStore()
        PermitActor(formatter, store).execute(
            connection, message, Rule(match_message=r"^!hello (\w+)"), FieldCollection(), attrs(user="@{{ group(1) }}")
        )
        assert store.has_permit("#test", "world")

    def test_no_channel(self, formatter, connection):
        with pytest.raises(ActorError):
            PermitActor(formatter, TimerStore()).execute(connection, None, Rule(), FieldCollection(), attrs(user="bob"))


class TestScriptActor:
    """Tests for the script actor."""

    def _script(self, tmp_path, body):
        path = tmp_path / "script.py"
        path.write_text(body)
        return [sys.executable, str(path)]

    def test_receives_message_on_stdin(self, tmp_path, formatter, connection, message):
        out = tmp_path / "out.json"
        command = self._script(tmp_path, (
            "import sys\n"
            f"open({str(out)!r}, 'w').write(sys.stdin.read())\n"
        ))

        result = ScriptActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(command=command))

        assert result is False
        data = json.loads(out.read_text())
        assert data["username"] == "alice"
        assert data["channel"] == "#test"
        assert data["message"] == "!hello world"
        assert data["badges"] == {"vip": 1}

    def test_templated_arguments(self, tmp_path, formatter, connection, message):
        out = tmp_path / "out.txt"
        command = self._script(tmp_path, (
            "import sys\n"
            f"open({str(out)!r}, 'w').write(sys.argv[1])\n"
        )) + ["{{ username }}"]

        ScriptActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(command=command))

        assert out.read_text() == "alice"

    def test_non_zero_exit(self, tmp_path, formatter, connection, message):
        command = self._script(tmp_path, "import sys\nsys.exit(3)\n")
        with pytest.raises(ActorError):
            ScriptActor(formatter).execute(connection, message, Rule(), FieldCollection(), attrs(command=command))

    def test_timeout(self, tmp_path, formatter, connection, message):
        command = self._script(tmp_path, "import time\ntime.sleep(5)\n")
        with pytest.raises(ActorError):
            ScriptActor(formatter, timeout=0.5).execute(connection, message, Rule(), FieldCollection(), attrs(command=command))

    def test_returned_actions(self, tmp_path, formatter, connection, message):
        command = self._script(tmp_path, (
            "import json\n"
            "print(json.dumps([{'type': 'respond', 'attributes': {'message': 'from script'}}]))\n"
        ))
        executed = []

        def runner(conn, msg, rule, action, event_data):
            executed.append(action)
            return True

        result = ScriptActor(formatter, action_runner=runner).execute(
            connection, message, Rule(), FieldCollection(), attrs(command=command)
        )

        assert result is True
        assert executed[0].type == "respond"
        assert executed[0].attributes.get_string("message") == "from script"

    def test_invalid_output(self, tmp_path, formatter, connection, message):
        command = self._script(tmp_path, "print('not json')\n")
        with pytest.raises(ActorError):
            ScriptActor(formatter, action_runner=lambda *a: False).execute(
                connection, message, Rule(), FieldCollection(), attrs(command=command)
            )


class TestWebhookActor:
    """Tests for the webhook actor."""

    def test_posts_rendered_body(self, formatter, connection, message):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(204)

        actor = WebhookActor(formatter, transport=httpx.MockTransport(handler))
        actor.execute(
            connection, message, Rule(), FieldCollection(),
            attrs(url="https://example.com/hook", body='{"user": "{{ username }}"}')
        )

        assert actor.is_async()
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == {"user": "alice"}
        assert requests[0].headers["content-type"] == "application/json"

    def test_error_status(self, formatter, connection, message):
        actor = WebhookActor(formatter, transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        with pytest.raises(ActorError):
            actor.execute(connection, message, Rule(), FieldCollection(), attrs(url="https://example.com/hook"))


class CountingActor(BaseActor):
    name = "count"
    documentation = ActionDocumentation(
        type="count",
        name="Count",
        description="Counts",
        fields=[
            ActionDocumentationField(key="amount", name="Amount", description="How much", type=FIELD_TYPE_INT64),
            ActionDocumentationField(key="note", name="Note", description="Note", optional=True, support_template=True),
        ],
    )

    def execute(self, connection, message, rule, event_data, attrs):
        return False


class TestActionRegistry:
    """Tests for the action registry."""

    def test_register_and_get(self):
        registry = ActionRegistry()
        registry.register("count", CountingActor)

        assert registry.has("count")
        assert isinstance(registry.get("count"), CountingActor)
        assert registry.get("count") is not registry.get("count")
        assert registry.documentation()[0].type == "count"

    def test_duplicate(self):
        registry = ActionRegistry()
        registry.register("count", CountingActor)
        with pytest.raises(DuplicateActorError):
            registry.register("count", CountingActor)

    def test_unknown(self):
        with pytest.raises(ActorNotFoundError):
            ActionRegistry().get("missing")

    def test_validate_action(self, formatter):
        registry = ActionRegistry()
        registry.register("count", CountingActor)

        registry.validate_action(RuleAction("count", attrs(amount=3)), formatter.validate)

        with pytest.raises(ValidationError):
            registry.validate_action(RuleAction("count", attrs()), formatter.validate)
        with pytest.raises(ValidationError):
            registry.validate_action(RuleAction("count", attrs(amount="many")), formatter.validate)
        with pytest.raises(ValidationError):
            registry.validate_action(RuleAction("count", attrs(amount=1, extra=True)), formatter.validate)
        with pytest.raises(ValidationError):
            registry.validate_action(RuleAction("count", attrs(amount=1, note="{{ broken")), formatter.validate)
        with pytest.raises(ValidationError):
            registry.validate_action(RuleAction("missing", attrs()), formatter.validate)

    def test_core_actors(self, formatter):
        registry = ActionRegistry()
        register_core_actors(registry, formatter, TimerStore())

        assert registry.names() == ["delay", "log", "permit", "respond", "script", "stopexec", "webhook"]
        registry.validate_action(RuleAction("respond", attrs(message="{{ username }}")), formatter.validate)
        with pytest.raises(ValidationError):
            registry.validate_action(RuleAction("respond", attrs(message="")), formatter.validate)
