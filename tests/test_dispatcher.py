"""
Test Action Dispatcher Module
============================

Unit tests for rule execution: action order, stop handling, async
actors and cooldown recording.
"""

import threading
import time
import pytest
from datetime import timedelta
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from actors import register_core_actors
from actors.base import BaseActor
from actors.registry import ActionRegistry
from core.exceptions import ActorError, StopRuleExecution
from core.fields import FieldCollection
from core.message import ChatConnection, ChatMessage
from core.timers import TimerStore, TimerType
from rules.engine import RulesEngine
from rules.matcher import RuleMatcher
from rules.templates import MessageFormatter
from services.dispatcher import ActionDispatcher
from services.events import EventNotifier


class RecordingConnection(ChatConnection):
    def __init__(self):
        self.sent = []

    def send_message(self, message):
        self.sent.append(message)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class ScriptedActor(BaseActor):
    """Records its execution and behaves according to its attributes."""

    name = "scripted"

    def __init__(self, log):
        super().__init__()
        self.log = log

    def execute(self, connection, message, rule, event_data, attrs):
        self.log.append(attrs.get_string("id"))
        outcome = attrs.must_string("outcome", "ok")
        prevent = attrs.must_bool("prevent_cooldown", False)

        if outcome == "stop":
            raise StopRuleExecution(prevent_cooldown=prevent)
        if outcome == "error":
            raise ActorError("scripted failure")
        if outcome == "sleep":
            time.sleep(0.3)
        if outcome == "set":
            event_data.set("touched", attrs.get_string("id"))
        if outcome == "read":
            self.log.append("touched" in event_data)
        return prevent


class SlowAsyncActor(BaseActor):
    name = "slow"

    def __init__(self, done):
        super().__init__()
        self.done = done

    def execute(self, connection, message, rule, event_data, attrs):
        time.sleep(1.0)
        self.done.set()
        return True

    def is_async(self):
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return TimerStore(clock=clock)


@pytest.fixture
def log():
    return []


@pytest.fixture
def slow_done():
    return threading.Event()


@pytest.fixture
def setup(store, log, slow_done):
    formatter = MessageFormatter()
    registry = ActionRegistry()
    register_core_actors(registry, formatter, store)
    registry.register("scripted", lambda: ScriptedActor(log))
    registry.register("slow", lambda: SlowAsyncActor(slow_done))

    engine = RulesEngine(RuleMatcher(store, formatter))
    notifier = EventNotifier()
    dispatcher = ActionDispatcher(engine, registry, store, notifier)
    return engine, dispatcher, notifier


def scripted(id, **attrs):
    return {"type": "scripted", "attributes": dict(attrs, id=id)}


def msg(text="!ping", user="alice", channel="#test"):
    return ChatMessage.privmsg(channel, text, user=user)


class TestEndToEnd:
    """End-to-end scenarios through engine and dispatcher."""

    def test_ping_pong(self, setup):
        engine, dispatcher, _ = setup
        engine.load_rules([{
            "match_message": "^!ping$",
            "actions": [{"type": "respond", "attributes": {"message": "pong"}}],
        }])
        connection = RecordingConnection()

        dispatcher.handle_message(connection, msg("!ping"))

        assert len(connection.sent) == 1
        assert connection.sent[0].params == ["#test", "pong"]

    def test_cooldown_blocks_second_firing(self, setup, log, clock):
        engine, dispatcher, _ = setup
        engine.load_rules([{"cooldown": "10s", "actions": [scripted("a")]}])
        connection = RecordingConnection()

        dispatcher.handle_message(connection, msg("hi", user="bob"))
        clock.now += 5
        results = dispatcher.handle_message(connection, msg("hi", user="bob"))

        assert log == ["a"]
        assert results == []

        clock.now += 5
        dispatcher.handle_message(connection, msg("hi", user="bob"))
        assert log == ["a", "a"]

    def test_error_aborts_chain_without_cooldown(self, setup, log, store):
        engine, dispatcher, _ = setup
        engine.load_rules([{
            "uuid": "failing",
            "cooldown": "10s",
            "actions": [scripted("a", outcome="error"), scripted("b")],
        }])

        results = dispatcher.handle_message(RecordingConnection(), msg())

        assert log == ["a"]
        assert results[0].error is not None
        assert results[0].cooldown_recorded is False
        assert not store.in_cooldown(TimerType.COOLDOWN, "", "failing")

    def test_concurrent_firings_respect_cooldown(self, setup, log):
        engine, dispatcher, _ = setup
        engine.load_rules([{"cooldown": "10s", "actions": [scripted("a", outcome="sleep")]}])
        connection = RecordingConnection()
        results = []

        def fire():
            results.extend(dispatcher.handle_message(connection, msg("hi", user="bob")))

        threads = [threading.Thread(target=fire) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert log == ["a"]
        assert sorted(r.skipped for r in results) == [False, True]


class TestActionChain:
    """Tests for action ordering and stop handling."""

    def test_actions_run_in_order(self, setup, log):
        engine, dispatcher, _ = setup
        engine.load_rules([{"actions": [scripted("a"), scripted("b"), scripted("c")]}])

        dispatcher.handle_message(RecordingConnection(), msg())

        assert log == ["a", "b", "c"]

    def test_stop_ends_chain_and_records_cooldown(self, setup, log, store):
        engine, dispatcher, _ = setup
        engine.load_rules([{
            "uuid": "stopper",
            "cooldown": "10s",
            "actions": [scripted("a"), scripted("b", outcome="stop"), scripted("c")],
        }])

        results = dispatcher.handle_message(RecordingConnection(), msg())

        assert log == ["a", "b"]
        assert results[0].stopped is True
        assert results[0].error is None
        assert store.in_cooldown(TimerType.COOLDOWN, "", "stopper")

    def test_prevent_cooldown_from_earlier_action(self, setup, log, store):
        engine, dispatcher, _ = setup
        engine.load_rules([{
            "uuid": "prevented",
            "cooldown": "10s",
            "actions": [scripted("a", prevent_cooldown=True), scripted("b", outcome="stop"), scripted("c")],
        }])

        dispatcher.handle_message(RecordingConnection(), msg())

        assert log == ["a", "b"]
        assert not store.in_cooldown(TimerType.COOLDOWN, "", "prevented")

    def test_prevent_cooldown_from_stop(self, setup, store):
        engine, dispatcher, _ = setup
        engine.load_rules([{
            "uuid": "prevented",
            "cooldown": "10s",
            "actions": [scripted("a"), scripted("b", outcome="stop", prevent_cooldown=True)],
        }])

        dispatcher.handle_message(RecordingConnection(), msg())

        assert not store.in_cooldown(TimerType.COOLDOWN, "", "prevented")

    def test_unknown_action_aborts_rule(self, setup, log, store):
        engine, dispatcher, _ = setup
        engine.load_rules([{
            "uuid": "unknown",
            "cooldown": "10s",
            "actions": [{"type": "nope"}, scripted("b")],
        }])

        results = dispatcher.handle_message(RecordingConnection(), msg())

        assert log == []
        assert "nope" in results[0].error
        assert not store.in_cooldown(TimerType.COOLDOWN, "", "unknown")

    def test_failing_rule_does_not_affect_siblings(self, setup, log):
        engine, dispatcher, _ = setup
        engine.load_rules([
            {"actions": [scripted("a", outcome="error")]},
            {"actions": [scripted("b")]},
        ])

        results = dispatcher.handle_message(RecordingConnection(), msg())

        assert log == ["a", "b"]
        assert len(results) == 2

    def test_event_data_isolated_between_rules(self, setup, log):
        engine, dispatcher, _ = setup
        engine.load_rules([
            {"match_event": "custom", "actions": [scripted("a", outcome="set")]},
            {"match_event": "custom", "actions": [scripted("b", outcome="read")]},
        ])
        data = FieldCollection({"channel": "#test"})

        dispatcher.handle_message(RecordingConnection(), None, "custom", data)

        assert log == ["a", "b", False]
        assert "touched" not in data


class TestAsyncActors:
    """Tests for detached actors."""

    def test_async_actor_does_not_block(self, setup, log, slow_done):
        engine, dispatcher, _ = setup
        engine.load_rules([{"actions": [{"type": "slow"}, scripted("after")]}])

        start = time.monotonic()
        dispatcher.handle_message(RecordingConnection(), msg())
        elapsed = time.monotonic() - start

        assert elapsed < 0.5
        assert log == ["after"]
        assert slow_done.wait(5)

    def test_async_result_does_not_prevent_cooldown(self, setup, store, slow_done):
        engine, dispatcher, _ = setup
        engine.load_rules([{"uuid": "async", "cooldown": "10s", "actions": [{"type": "slow"}]}])

        dispatcher.handle_message(RecordingConnection(), msg())

        assert store.in_cooldown(TimerType.COOLDOWN, "", "async")
        assert slow_done.wait(5)


class TestEvents:
    """Tests for event notification from the dispatcher."""

    def test_event_notifies_handlers(self, setup):
        engine, dispatcher, notifier = setup
        received = []
        done = threading.Event()

        def handler(event, data):
            received.append((event, data.get_string("channel")))
            done.set()

        notifier.register(handler)
        dispatcher.handle_message(RecordingConnection(), None, "raid", FieldCollection({"channel": "#test"}))

        assert done.wait(5)
        assert received == [("raid", "#test")]

    def test_plain_message_does_not_notify(self, setup):
        engine, dispatcher, notifier = setup
        received = []
        notifier.register(lambda event, data: received.append(event))

        dispatcher.handle_message(RecordingConnection(), msg())
        time.sleep(0.1)

        assert received == []
