"""
Permit Actor - Grant a permit from within a rule
================================================
"""

from typing import Any, Optional

from .base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_STRING
from core.exceptions import ActorError, BotError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage, derive_channel
from core.timers import TimerStore

logger = get_logger("actors.permit")


class PermitActor(BaseActor):
    """Grant the rendered `user` a permit in the current channel."""

    name = "permit"
    documentation = ActionDocumentation(
        type="permit",
        name="Grant Permit",
        description="Grant a permit to a user in the current channel",
        fields=[
            ActionDocumentationField(
                key="user",
                name="User",
                description="User to grant the permit to",
                type=FIELD_TYPE_STRING,
                support_template=True,
            ),
        ],
    )

    def __init__(self, formatter=None, timer_store: Optional[TimerStore] = None):
        super().__init__(formatter)
        self.timer_store = timer_store

    def execute(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> bool:
        channel = derive_channel(message, event_data)
        if not channel:
            raise ActorError("No channel to grant the permit in")

        try:
            user = self.format(attrs.get_string("user"), message, rule, event_data)
        except BotError as e:
            raise ActorError(f"rendering user: {e.message}", e.details)

        user = user.lstrip("@").strip()
        if not user:
            raise ActorError("Permit user rendered empty")

        self.timer_store.add_permit(channel, user)
        logger.info("Permit granted", extra={"channel": channel, "user": user})
        return False
