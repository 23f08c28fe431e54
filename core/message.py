"""
Chat Message - IRC-style message model
======================================

This module contains the message type flowing through the bot:
- IRCv3 line parsing and formatting (tags, prefix, command, params)
- Channel and user derivation from a message or event data
- The outbound connection contract used by actors
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exceptions import BotError
from .fields import FieldCollection
from .logging import get_logger


logger = get_logger("core.message")

_TAG_UNESCAPE = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}
_TAG_ESCAPE = {";": "\\:", " ": "\\s", "\\": "\\\\", "\r": "\\r", "\n": "\\n"}


class MessageParseError(BotError):
    """Raised when a raw line is not a valid IRC message."""
    pass


def _unescape_tag(value: str) -> str:
    out = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        nxt = next(chars, "")
        out.append(_TAG_UNESCAPE.get(nxt, nxt))
    return "".join(out)


def _escape_tag(value: str) -> str:
    return "".join(_TAG_ESCAPE.get(c, c) for c in value)


@dataclass
class ChatMessage:
    """
    A single chat line.

    Attributes:
        command: IRC command (PRIVMSG, USERNOTICE, CLEARCHAT, ...)
        params: Command parameters, the last one being the trailing text
        tags: IRCv3 message tags (badges, user-id, msg-id, ...)
        nick: Nick of the prefix
        user: User part of the prefix
        host: Host part of the prefix
    """
    command: str
    params: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)
    nick: str = ""
    user: str = ""
    host: str = ""

    @classmethod
    def privmsg(
        cls,
        channel: str,
        text: str,
        user: str = "",
        tags: Optional[Dict[str, str]] = None
    ) -> "ChatMessage":
        """Build a PRIVMSG as sent by `user` into `channel`."""
        return cls(
            command="PRIVMSG",
            params=[channel, text],
            tags=dict(tags or {}),
            nick=user,
            user=user,
            host=f"{user}.tmi.twitch.tv" if user else "",
        )

    @classmethod
    def parse(cls, line: str) -> "ChatMessage":
        """
        Parse a raw IRC line.

        Args:
            line: Raw line, with or without trailing CRLF

        Returns:
            Parsed ChatMessage

        Raises:
            MessageParseError: If the line has no command
        """
        rest = line.rstrip("\r\n")
        tags: Dict[str, str] = {}
        nick = user = host = ""

        if rest.startswith("@"):
            raw_tags, _, rest = rest[1:].partition(" ")
            for item in raw_tags.split(";"):
                if not item:
                    continue
                key, _, value = item.partition("=")
                tags[key] = _unescape_tag(value)
            rest = rest.lstrip(" ")

        if rest.startswith(":"):
            prefix, _, rest = rest[1:].partition(" ")
            nick, _, host = prefix.partition("@")
            nick, _, user = nick.partition("!")
            rest = rest.lstrip(" ")

        head, sep, trailing = rest.partition(" :")
        parts = head.split()
        if not parts:
            raise MessageParseError("Message has no command", {"line": line})

        params = parts[1:]
        if sep:
            params.append(trailing)

        return cls(
            command=parts[0].upper(),
            params=params,
            tags=tags,
            nick=nick,
            user=user,
            host=host,
        )

    def format(self) -> str:
        """Serialize the message back into a raw IRC line (without CRLF)."""
        out = []

        if self.tags:
            out.append("@" + ";".join(
                f"{k}={_escape_tag(v)}" if v else k
                for k, v in sorted(self.tags.items())
            ))

        if self.nick:
            prefix = self.nick
            if self.user:
                prefix += f"!{self.user}"
            if self.host:
                prefix += f"@{self.host}"
            out.append(":" + prefix)

        out.append(self.command)

        if self.params:
            out.extend(self.params[:-1])
            last = self.params[-1]
            if not last or " " in last or last.startswith(":"):
                last = ":" + last
            out.append(last)

        return " ".join(out)

    @property
    def trailing(self) -> str:
        """Last parameter, the chat text for PRIVMSG."""
        return self.params[-1] if self.params else ""

    @property
    def channel(self) -> str:
        """First parameter when it names a channel, empty string otherwise."""
        if self.params and self.params[0].startswith("#"):
            return self.params[0]
        return ""

    @property
    def username(self) -> str:
        """Sender login: the prefix user, falling back to the nick."""
        return self.user or self.nick

    def __str__(self) -> str:
        return self.format()


def derive_channel(
    message: Optional[ChatMessage],
    event_data: Optional[FieldCollection] = None
) -> str:
    """
    Extract the channel an event or message took place in.

    The message's first parameter wins; otherwise the `channel` key of
    the event data is used, normalized to a leading `#`.
    """
    if message is not None and message.channel:
        return message.channel

    if event_data is not None and event_data.can_string("channel"):
        channel = event_data.get_string("channel").lstrip("#")
        if channel:
            return f"#{channel}"

    return ""


def derive_user(
    message: Optional[ChatMessage],
    event_data: Optional[FieldCollection] = None
) -> str:
    """
    Extract the user causing an event or message.

    The message sender wins; otherwise the `user` and then `username`
    keys of the event data are used.
    """
    if message is not None and message.username:
        return message.username

    if event_data is not None:
        for key in ("user", "username"):
            if event_data.can_string(key):
                return event_data.get_string(key)

    return ""


class ChatConnection(ABC):
    """
    Outbound side of the chat transport.

    Implementations must be safe to call from multiple threads as
    actors run concurrently for different inbound messages.
    """

    @abstractmethod
    def send_message(self, message: ChatMessage) -> None:
        """Send a message to the chat server."""
        pass


class LogConnection(ChatConnection):
    """
    Connection used when no chat transport is attached.

    Outbound messages are only logged, which is what dry-runs from the
    CLI and the web API want.
    """

    def send_message(self, message: ChatMessage) -> None:
        logger.info("Outbound message", extra={"line": message.format()})
