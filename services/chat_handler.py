"""
Chat Handler - Routes inbound chat lines
========================================

Turns raw inbound messages into dispatcher calls: plain chat messages
are dispatched as they are, platform notices are translated into
named events with event data attached.
"""

import threading
from typing import Any, Dict

from core.config import Config
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage
from core.timers import TimerStore
from rules.badges import BADGE_BROADCASTER, BADGE_MODERATOR, parse_badge_levels

from .dispatcher import ActionDispatcher

logger = get_logger("services.chat_handler")

# USERNOTICE msg-id -> event name
USERNOTICE_EVENTS: Dict[str, str] = {
    "sub": "sub",
    "resub": "resub",
    "subgift": "subgift",
    "submysterygift": "submysterygift",
    "giftpaidupgrade": "giftpaidupgrade",
    "raid": "raid",
}

# event data key -> message tag
_USERNOTICE_FIELDS: Dict[str, Dict[str, str]] = {
    "sub": {"plan": "msg-param-sub-plan"},
    "resub": {"plan": "msg-param-sub-plan", "subscribed_months": "msg-param-cumulative-months"},
    "subgift": {"plan": "msg-param-sub-plan", "to": "msg-param-recipient-user-name"},
    "submysterygift": {"plan": "msg-param-sub-plan", "number": "msg-param-mass-gift-count"},
    "giftpaidupgrade": {"gifter": "msg-param-sender-login"},
    "raid": {"from": "login", "viewercount": "msg-param-viewerCount"},
}


class ChatHandler:
    """
    Inbound message router.

    Example:
        handler = ChatHandler(dispatcher, timer_store, config)
        handler.dispatch(connection, ChatMessage.parse(line))
    """

    def __init__(self, dispatcher: ActionDispatcher, timer_store: TimerStore, config: Config):
        self.dispatcher = dispatcher
        self.timer_store = timer_store
        self.config = config

    def dispatch(self, connection: ChatConnection, message: ChatMessage) -> threading.Thread:
        """Handle the message in its own background thread."""
        thread = threading.Thread(
            target=self.handle,
            args=(connection, message),
            daemon=True,
            name=f"chat-{message.command}",
        )
        thread.start()
        return thread

    def handle(self, connection: ChatConnection, message: ChatMessage) -> None:
        """Route one inbound message to the dispatcher."""
        command = message.command

        if command == "PRIVMSG":
            self._handle_privmsg(connection, message)
        elif command == "USERNOTICE":
            self._handle_usernotice(connection, message)
        elif command == "CLEARCHAT":
            self._handle_clearchat(connection, message)
        elif command in ("JOIN", "PART"):
            event_data = FieldCollection({"channel": message.channel, "user": message.username})
            self.dispatcher.handle_message(connection, message, command.lower(), event_data)
        else:
            logger.debug("Unhandled message", extra={"command": command})

    def _handle_privmsg(self, connection: ChatConnection, message: ChatMessage) -> None:
        if message.trailing.startswith("!permit"):
            self._handle_permit(connection, message)
            return

        bits = message.tags.get("bits")
        if bits:
            event_data = FieldCollection({
                "channel": message.channel,
                "user": message.username,
                "bits": _numeric(bits),
                "message": message.trailing,
            })
            self.dispatcher.handle_message(connection, message, "bits", event_data)
            return

        self.dispatcher.handle_message(connection, message)

    def _handle_permit(self, connection: ChatConnection, message: ChatMessage) -> None:
        badges = parse_badge_levels(message)
        allowed = badges.has(BADGE_BROADCASTER) or (
            self.config.permit_allow_moderator and badges.has(BADGE_MODERATOR)
        )
        if not allowed:
            return

        parts = message.trailing.split(" ")
        if len(parts) != 2 or not parts[1].lstrip("@"):
            return

        username = parts[1].lstrip("@").lower()
        self.timer_store.add_permit(message.channel, username)
        logger.debug("Added permit", extra={"channel": message.channel, "user": username})

        event_data = FieldCollection({"channel": message.channel, "user": message.username, "to": username})
        self.dispatcher.handle_message(connection, message, "permit", event_data)

    def _handle_usernotice(self, connection: ChatConnection, message: ChatMessage) -> None:
        msg_id = message.tags.get("msg-id", "")
        if not msg_id:
            logger.warning("Received usernotice without msg-id", extra={"line": message.format()})
            return

        event = USERNOTICE_EVENTS.get(msg_id)
        if event is None:
            logger.debug("Unhandled usernotice", extra={"msg_id": msg_id})
            return

        event_data = FieldCollection({
            "channel": message.channel,
            "user": message.tags.get("login", message.username),
        })
        for key, tag in _USERNOTICE_FIELDS[event].items():
            if tag in message.tags:
                value = message.tags[tag]
                event_data.set(key, _numeric(value))

        if event == "raid":
            logger.info("Incoming raid", extra={"from": event_data.must_string("from", ""), "channel": message.channel})

        self.dispatcher.handle_message(connection, message, event, event_data)

    def _handle_clearchat(self, connection: ChatConnection, message: ChatMessage) -> None:
        target = message.trailing if len(message.params) > 1 else ""
        if not target:
            # Whole chat cleared, no user affected
            self.dispatcher.handle_message(
                connection, message, "clearchat", FieldCollection({"channel": message.channel})
            )
            return

        event_data = FieldCollection({"channel": message.channel, "target_name": target, "user": target})

        duration = message.tags.get("ban-duration")
        if duration:
            event_data.set("duration", _numeric(duration))
            self.dispatcher.handle_message(connection, message, "timeout", event_data)
        else:
            self.dispatcher.handle_message(connection, message, "ban", event_data)


def _numeric(value: str) -> Any:
    return int(value) if value.isdigit() else value
