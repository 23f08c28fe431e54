"""
Actors Module - Execution units behind rule actions
===================================================

This module provides the actors executing the actions configured in
rules, and the registry resolving action type names into actors:
- respond: Send a chat message
- delay: Pause the action chain
- stopexec: Conditionally stop the action chain
- log: Write a log line
- script: Run an external command
- webhook: POST to a URL
- permit: Grant a permit
"""

from typing import Optional

from .base import ActionDocumentation, ActionDocumentationField, BaseActor
from .delay import DelayActor
from .log import LogActor
from .permit import PermitActor
from .registry import ActionRegistry
from .respond import RespondActor
from .script import ActionRunner, ScriptActor
from .stopexec import StopExecutionActor
from .webhook import WebhookActor

from core.timers import TimerStore


def register_core_actors(
    registry: ActionRegistry,
    formatter=None,
    timer_store: Optional[TimerStore] = None,
    action_runner: Optional[ActionRunner] = None,
    script_timeout: float = 30.0,
    webhook_timeout: float = 10.0
) -> None:
    """
    Register all bundled actors.

    Args:
        registry: Registry to populate
        formatter: Template renderer handed to every actor
        timer_store: Store used by the permit actor
        action_runner: Executes actions returned by scripts
        script_timeout: Seconds a script may run
        webhook_timeout: Seconds a webhook request may take
    """
    registry.register(RespondActor.name, lambda: RespondActor(formatter))
    registry.register(DelayActor.name, lambda: DelayActor(formatter))
    registry.register(StopExecutionActor.name, lambda: StopExecutionActor(formatter))
    registry.register(LogActor.name, lambda: LogActor(formatter))
    registry.register(
        ScriptActor.name,
        lambda: ScriptActor(formatter, timeout=script_timeout, action_runner=action_runner)
    )
    registry.register(WebhookActor.name, lambda: WebhookActor(formatter, timeout=webhook_timeout))
    registry.register(PermitActor.name, lambda: PermitActor(formatter, timer_store))


__all__ = [
    "ActionDocumentation",
    "ActionDocumentationField",
    "ActionRegistry",
    "BaseActor",
    "DelayActor",
    "LogActor",
    "PermitActor",
    "RespondActor",
    "ScriptActor",
    "StopExecutionActor",
    "WebhookActor",
    "register_core_actors",
]
