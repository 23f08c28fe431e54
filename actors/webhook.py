"""
Webhook Actor - POST a rendered body to a URL
=============================================
"""

from typing import Any, Optional

import httpx

from .base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_STRING
from core.exceptions import ActorError, BotError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage

logger = get_logger("actors.webhook")


class WebhookActor(BaseActor):
    """
    Send a templated HTTP POST.

    Runs detached from the rule chain; failures are only logged by the
    dispatcher.
    """

    name = "webhook"
    documentation = ActionDocumentation(
        type="webhook",
        name="Send Webhook",
        description="Send a POST request with the rendered body to the given URL",
        fields=[
            ActionDocumentationField(
                key="url",
                name="URL",
                description="URL to send the request to",
                type=FIELD_TYPE_STRING,
                support_template=True,
            ),
            ActionDocumentationField(
                key="body",
                name="Body",
                description="Request body",
                type=FIELD_TYPE_STRING,
                optional=True,
                support_template=True,
                long=True,
            ),
            ActionDocumentationField(
                key="content_type",
                name="Content-Type",
                description="Content-Type header of the request",
                type=FIELD_TYPE_STRING,
                optional=True,
                default="application/json",
            ),
        ],
    )

    def __init__(self, formatter=None, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        super().__init__(formatter)
        self.timeout = timeout
        self.transport = transport

    def execute(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> bool:
        try:
            url = self.format(attrs.get_string("url"), message, rule, event_data)
            body = self.format(attrs.must_string("body", ""), message, rule, event_data)
        except BotError as e:
            raise ActorError(f"rendering webhook: {e.message}", e.details)

        headers = {"Content-Type": attrs.must_string("content_type", "application/json")}

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, content=body.encode("utf-8"), headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ActorError(f"sending webhook: {e}", {"url": url})

        logger.debug("Webhook delivered", extra={"url": url, "status": response.status_code})
        return False

    def is_async(self) -> bool:
        return True
