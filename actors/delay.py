"""
Delay Actor - Pause the action chain
====================================
"""

import random
import time
from datetime import timedelta
from typing import Any, Optional

from .base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_DURATION
from core.fields import FieldCollection
from core.message import ChatConnection, ChatMessage


class DelayActor(BaseActor):
    """
    Sleep for `delay` plus a random jitter below `jitter`.

    Runs synchronously so every following action of the rule waits.
    """

    name = "delay"
    documentation = ActionDocumentation(
        type="delay",
        name="Delay",
        description="Delay next action",
        fields=[
            ActionDocumentationField(
                key="delay",
                name="Delay",
                description="Static delay to wait",
                type=FIELD_TYPE_DURATION,
                optional=True,
            ),
            ActionDocumentationField(
                key="jitter",
                name="Jitter",
                description="Dynamic jitter to add to the static delay (the added extra delay will be between 0 and this value)",
                type=FIELD_TYPE_DURATION,
                optional=True,
            ),
        ],
    )

    def __init__(self, formatter=None, sleep=time.sleep):
        super().__init__(formatter)
        self.sleep = sleep

    def execute(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> bool:
        delay = attrs.must_duration("delay", timedelta(0))
        jitter = attrs.must_duration("jitter", timedelta(0))

        if not delay and not jitter:
            return False

        total = delay.total_seconds()
        if jitter > timedelta(0):
            total += random.uniform(0, jitter.total_seconds())

        self.sleep(total)
        return False
