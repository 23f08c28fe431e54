"""
Log Actor - Write a rendered message to the bot log
===================================================
"""

from typing import Any, Optional

from .base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_STRING
from core.exceptions import ActorError, BotError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage, derive_channel, derive_user

logger = get_logger("actors.log")


class LogActor(BaseActor):
    """Render `message` and log it at INFO level, detached from the rule chain."""

    name = "log"
    documentation = ActionDocumentation(
        type="log",
        name="Log output",
        description="Print info log-line to bot log",
        fields=[
            ActionDocumentationField(
                key="message",
                name="Message",
                description="Message to log into bot-log",
                type=FIELD_TYPE_STRING,
                support_template=True,
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
        try:
            text = self.format(attrs.must_string("message", ""), message, rule, event_data)
        except BotError as e:
            raise ActorError(f"executing message template: {e.message}", e.details)

        logger.info(text, extra={
            "channel": derive_channel(message, event_data),
            "rule": getattr(rule, "uuid", ""),
            "username": derive_user(message, event_data),
        })
        return False

    def is_async(self) -> bool:
        return True
