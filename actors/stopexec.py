"""
Stop Execution Actor - End a rule's action chain on a condition
===============================================================
"""

from typing import Any, Optional

from .base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_STRING
from core.exceptions import ActorError, BotError, StopRuleExecution
from core.fields import FieldCollection
from core.message import ChatConnection, ChatMessage


class StopExecutionActor(BaseActor):
    """Raise StopRuleExecution when `when` renders to "true"."""

    name = "stopexec"
    documentation = ActionDocumentation(
        type="stopexec",
        name="Stop Execution",
        description="Stop Rule Execution on Condition",
        fields=[
            ActionDocumentationField(
                key="when",
                name="When",
                description='Condition when to stop execution (must evaluate to "true" to stop execution)',
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
            when = self.format(attrs.must_string("when", ""), message, rule, event_data)
        except BotError as e:
            raise ActorError(f"executing when template: {e.message}", e.details)

        if when == "true":
            raise StopRuleExecution()

        return False
