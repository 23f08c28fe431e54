"""
Respond Actor - Send a chat message
===================================

Renders the `message` template and sends it as PRIVMSG into the
channel of the triggering message, or into `to_channel` when set.
When rendering fails and a `fallback` is configured, the fallback is
rendered and sent instead.
"""

from typing import Any, Optional

from .base import (
    ActionDocumentation,
    ActionDocumentationField,
    BaseActor,
    FIELD_TYPE_BOOL,
    FIELD_TYPE_STRING,
)
from core.exceptions import ActorError, BotError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage, derive_channel

logger = get_logger("actors.respond")


class RespondActor(BaseActor):
    """Respond to the message or event with a chat message."""

    name = "respond"
    documentation = ActionDocumentation(
        type="respond",
        name="Respond to Message",
        description="Respond to message with a new message",
        fields=[
            ActionDocumentationField(
                key="message",
                name="Message",
                description="Message text to send",
                type=FIELD_TYPE_STRING,
                support_template=True,
                long=True,
            ),
            ActionDocumentationField(
                key="fallback",
                name="Fallback",
                description="Fallback message in case the main message template fails to render",
                type=FIELD_TYPE_STRING,
                optional=True,
                support_template=True,
                long=True,
            ),
            ActionDocumentationField(
                key="as_reply",
                name="As Reply",
                description="Send message as a native reply to the triggering message",
                type=FIELD_TYPE_BOOL,
                optional=True,
                default="false",
            ),
            ActionDocumentationField(
                key="to_channel",
                name="To Channel",
                description="Send message to another channel instead of the one the message came from",
                type=FIELD_TYPE_STRING,
                optional=True,
            ),
        ],
    )

    def execute(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> bool:
        text = self._render(message, rule, event_data, attrs)

        to_channel = derive_channel(message, event_data)
        if attrs.must_string("to_channel", ""):
            to_channel = "#" + attrs.get_string("to_channel").lstrip("#")

        if not to_channel:
            raise ActorError("No channel to respond to", {"rule": getattr(rule, "uuid", "")})

        response = ChatMessage(command="PRIVMSG", params=[to_channel, text])

        if attrs.must_bool("as_reply", False) and message is not None and message.tags.get("id"):
            response.tags["reply-parent-msg-id"] = message.tags["id"]

        try:
            connection.send_message(response)
        except BotError as e:
            raise ActorError(f"sending response: {e.message}", e.details)

        return False

    def _render(
        self,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> str:
        try:
            return self.format(attrs.get_string("message"), message, rule, event_data)
        except BotError as e:
            fallback = attrs.must_string("fallback", "")
            if not fallback:
                raise ActorError(f"preparing response: {e.message}", e.details)

            logger.error("Response message processing caused error, trying fallback", extra={"error": str(e)})

        try:
            return self.format(fallback, message, rule, event_data)
        except BotError as e:
            raise ActorError(f"preparing response fallback: {e.message}", e.details)
