"""
Test Services Module
===================

Unit tests for the event notifier, platform client and chat handler.
"""

import threading
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from core.config import Config, PlatformConfig
from core.exceptions import PlatformError
from core.fields import FieldCollection
from core.message import ChatMessage
from core.timers import TimerStore
from services.chat_handler import ChatHandler
from services.events import EventNotifier
from services.platform import PlatformClient


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestEventNotifier:
    """Tests for EventNotifier."""

    def test_handlers_receive_event(self):
        notifier = EventNotifier()
        received = []
        notifier.register(lambda event, data: received.append((event, data.get_string("user"))))

        notifier.notify("sub", FieldCollection({"user": "alice"})).join(5)

        assert received == [("sub", "alice")]

    def test_failing_handler_does_not_stop_others(self):
        notifier = EventNotifier()
        received = []

        def broken(event, data):
            raise RuntimeError("boom")

        notifier.register(broken)
        notifier.register(lambda event, data: received.append(event))

        notifier.notify("raid").join(5)

        assert received == ["raid"]

    def test_unregister(self):
        notifier = EventNotifier()
        received = []
        unregister = notifier.register(lambda event, data: received.append(event))

        unregister()
        notifier.notify("raid").join(5)

        assert received == []
        assert notifier.handler_count() == 0

    def test_handlers_get_copies(self):
        notifier = EventNotifier()
        data = FieldCollection({"user": "alice"})
        notifier.register(lambda event, d: d.set("user", "mallory"))

        notifier.notify("sub", data).join(5)

        assert data.get_string("user") == "alice"


class TestPlatformClient:
    """Tests for PlatformClient."""

    def _client(self, handler, clock=None):
        config = PlatformConfig(client_id="cid", token="tok", cache_ttl=30.0)
        return PlatformClient(config, transport=httpx.MockTransport(handler), clock=clock)

    def test_live(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": [{"type": "live", "user_login": "test"}]})

        client = self._client(handler)
        assert client.has_live_stream("#Test") is True

        request = seen[0]
        assert request.url.path == "/helix/streams"
        assert request.url.params["user_login"] == "test"
        assert request.headers["Client-Id"] == "cid"
        assert request.headers["Authorization"] == "Bearer tok"

    def test_offline(self):
        client = self._client(lambda request: httpx.Response(200, json={"data": []}))
        assert client.has_live_stream("test") is False

    def test_cached(self):
        calls = []
        clock = FakeClock()

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"data": []})

        client = self._client(handler, clock)
        client.has_live_stream("test")
        client.has_live_stream("test")
        assert len(calls) == 1

        clock.now += 31
        client.has_live_stream("test")
        assert len(calls) == 2

    def test_error_status(self):
        client = self._client(lambda request: httpx.Response(401, text="unauthorized"))
        with pytest.raises(PlatformError):
            client.has_live_stream("test")

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(PlatformError):
            self._client(handler).has_live_stream("test")


class RecordingDispatcher:
    def __init__(self):
        self.calls = []

    def handle_message(self, connection, message, event=None, event_data=None):
        self.calls.append((message, event, event_data.data() if event_data is not None else None))
        return []


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def store():
    return TimerStore()


def handler_for(dispatcher, store, **config):
    return ChatHandler(dispatcher, store, Config(**config))


class TestChatHandler:
    """Tests for routing inbound chat lines."""

    def test_plain_privmsg(self, dispatcher, store):
        line = ":alice!alice@alice.tmi.twitch.tv PRIVMSG #test :hello"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))

        message, event, data = dispatcher.calls[0]
        assert message.trailing == "hello"
        assert event is None

    def test_bits(self, dispatcher, store):
        line = "@bits=100 :alice!alice@alice.tmi.twitch.tv PRIVMSG #test :cheer100 great"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))

        _, event, data = dispatcher.calls[0]
        assert event == "bits"
        assert data["bits"] == 100
        assert data["user"] == "alice"

    def test_permit_by_broadcaster(self, dispatcher, store):
        line = "@badges=broadcaster/1 :owner!owner@owner.tmi.twitch.tv PRIVMSG #test :!permit @Bob"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))

        assert store.has_permit("#test", "bob")
        _, event, data = dispatcher.calls[0]
        assert event == "permit"
        assert data["to"] == "bob"

    def test_permit_by_moderator_needs_setting(self, dispatcher, store):
        line = "@badges=moderator/1 :mod!mod@mod.tmi.twitch.tv PRIVMSG #test :!permit bob"

        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))
        assert not store.has_permit("#test", "bob")
        assert dispatcher.calls == []

        handler_for(dispatcher, store, permit_allow_moderator=True).handle(None, ChatMessage.parse(line))
        assert store.has_permit("#test", "bob")

    def test_permit_by_regular_user_ignored(self, dispatcher, store):
        line = ":alice!alice@alice.tmi.twitch.tv PRIVMSG #test :!permit bob"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))

        assert not store.has_permit("#test", "bob")
        assert dispatcher.calls == []

    def test_raid(self, dispatcher, store):
        line = "@msg-id=raid;login=raider;msg-param-viewerCount=42 :tmi.twitch.tv USERNOTICE #test"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))

        _, event, data = dispatcher.calls[0]
        assert event == "raid"
        assert data == {"channel": "#test", "user": "raider", "from": "raider", "viewercount": 42}

    def test_resub(self, dispatcher, store):
        line = "@msg-id=resub;login=alice;msg-param-cumulative-months=7;msg-param-sub-plan=1000 :tmi.twitch.tv USERNOTICE #test :great stream"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))

        message, event, data = dispatcher.calls[0]
        assert event == "resub"
        assert data["subscribed_months"] == 7
        assert message.trailing == "great stream"

    def test_unknown_usernotice(self, dispatcher, store):
        line = "@msg-id=announcement :tmi.twitch.tv USERNOTICE #test :hi"
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(line))
        assert dispatcher.calls == []

    def test_timeout_and_ban(self, dispatcher, store):
        handler = handler_for(dispatcher, store)
        handler.handle(None, ChatMessage.parse("@ban-duration=600 :tmi.twitch.tv CLEARCHAT #test :spammer"))
        handler.handle(None, ChatMessage.parse(":tmi.twitch.tv CLEARCHAT #test :troll"))

        assert dispatcher.calls[0][1] == "timeout"
        assert dispatcher.calls[0][2]["duration"] == 600
        assert dispatcher.calls[1][1] == "ban"
        assert dispatcher.calls[1][2]["target_name"] == "troll"

    def test_join_and_part(self, dispatcher, store):
        handler = handler_for(dispatcher, store)
        handler.handle(None, ChatMessage.parse(":alice!alice@alice.tmi.twitch.tv JOIN #test"))
        handler.handle(None, ChatMessage.parse(":alice!alice@alice.tmi.twitch.tv PART #test"))

        assert [c[1] for c in dispatcher.calls] == ["join", "part"]
        assert dispatcher.calls[0][2] == {"channel": "#test", "user": "alice"}

    def test_dispatch_runs_in_thread(self, dispatcher, store):
        thread = handler_for(dispatcher, store).dispatch(None, ChatMessage.parse(":alice!alice@x PRIVMSG #test :hi"))
        thread.join(5)

        assert isinstance(thread, threading.Thread)
        assert len(dispatcher.calls) == 1

    def test_clearchat_without_target(self, dispatcher, store):
        handler_for(dispatcher, store).handle(None, ChatMessage.parse(":tmi.twitch.tv CLEARCHAT #test"))

        assert dispatcher.calls[0][1] == "clearchat"
        assert dispatcher.calls[0][2] == {"channel": "#test"}
