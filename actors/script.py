"""
Script Actor - Execute an external command
==========================================

The command receives a JSON document on stdin describing the message
(badges, channel, username, message text and tags). When the command
prints a JSON list of actions to stdout, those actions are executed as
part of the current rule.
"""

import json
import os
import subprocess
from typing import Any, Callable, List, Optional

from .base import ActionDocumentation, ActionDocumentationField, BaseActor, FIELD_TYPE_STRING_SLICE
from core.exceptions import ActorError, BotError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage, derive_channel, derive_user
from rules.badges import parse_badge_levels
from rules.rule import RuleAction

logger = get_logger("actors.script")

# (connection, message, rule, action, event_data) -> prevent_cooldown
ActionRunner = Callable[[ChatConnection, Optional[ChatMessage], Any, RuleAction, FieldCollection], bool]


class ScriptActor(BaseActor):
    """Run `command` with templated arguments and a bounded runtime."""

    name = "script"
    documentation = ActionDocumentation(
        type="script",
        name="Execute Script / Command",
        description="Execute external script / command",
        fields=[
            ActionDocumentationField(
                key="command",
                name="Command",
                description="Command to execute",
                type=FIELD_TYPE_STRING_SLICE,
                support_template=True,
            ),
        ],
    )

    def __init__(
        self,
        formatter=None,
        timeout: float = 30.0,
        action_runner: Optional[ActionRunner] = None
    ):
        """
        Initialize the actor.

        Args:
            formatter: Template renderer for the command arguments
            timeout: Seconds the command may run
            action_runner: Executes actions printed by the command
        """
        super().__init__(formatter)
        self.timeout = timeout
        self.action_runner = action_runner

    def execute(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> bool:
        command = self._build_command(message, rule, event_data, attrs)
        stdin = json.dumps(self._script_input(message, event_data))

        try:
            result = subprocess.run(
                command,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=os.environ.copy(),
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ActorError(f"running command: {e}", {"command": command[0]})

        if result.stderr:
            logger.warning("Command wrote to stderr", extra={"command": command[0], "stderr": result.stderr.strip()})

        if result.returncode != 0:
            raise ActorError(
                f"command exited with status {result.returncode}",
                {"command": command[0], "rule": getattr(rule, "uuid", "")}
            )

        if not result.stdout.strip():
            return False

        return self._run_returned_actions(connection, message, rule, event_data, result.stdout)

    def _build_command(
        self,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> List[str]:
        try:
            command = attrs.get_string_list("command")
        except BotError as e:
            raise ActorError(f"getting command: {e.message}", e.details)

        if not command:
            raise ActorError("command must not be empty")

        try:
            return [self.format(arg, message, rule, event_data) for arg in command]
        except BotError as e:
            raise ActorError(f"execute command argument template: {e.message}", e.details)

    @staticmethod
    def _script_input(message: Optional[ChatMessage], event_data: FieldCollection) -> dict:
        data = {
            "badges": parse_badge_levels(message).to_dict(),
            "channel": derive_channel(message, event_data),
            "username": derive_user(message, event_data),
        }

        if message is not None:
            data["message"] = message.trailing
            data["tags"] = dict(message.tags)

        return data

    def _run_returned_actions(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        output: str
    ) -> bool:
        try:
            payload = json.loads(output)
            if not isinstance(payload, list):
                raise ValueError("expected a list of actions")
            actions = [RuleAction.from_dict(a) for a in payload]
        except (ValueError, BotError) as e:
            raise ActorError(f"decoding actions output: {e}")

        if self.action_runner is None:
            raise ActorError("command returned actions but no action runner is configured")

        prevent_cooldown = False
        for action in actions:
            prevent_cooldown = self.action_runner(connection, message, rule, action, event_data) or prevent_cooldown

        return prevent_cooldown
