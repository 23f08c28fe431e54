"""
Web Routes - API endpoints
==========================

This module defines the JSON API of the chat rule bot.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, HTTPException
from pydantic import BaseModel, Field

from core.exceptions import BotError
from core.fields import FieldCollection
from core.logging import get_logger
from rules.matcher import KNOWN_EVENTS
from rules.rule import Rule

logger = get_logger("web.routes")

router = APIRouter()


class RuleValidation(BaseModel):
    """Rule validation model."""
    rule: Dict[str, Any]


class TestMessage(BaseModel):
    """Test message model."""
    message: str
    channel: str = "#test"
    username: str = "tester"
    badges: str = ""
    execute: bool = False


class EventRequest(BaseModel):
    """Synthetic event model."""
    fields: Dict[str, Any] = Field(default_factory=dict)


@router.get("/api/status")
async def get_status(request: Request):
    """Get bot status."""
    bot = request.app.state.bot
    config = request.app.state.config

    return {
        "app_name": config.app_name,
        "version": config.version,
        "channels": config.channels,
        "rules": len(bot.engine),
        "actions": bot.registry.names(),
        "timer_backend": config.storage.timer_backend,
        "event_handlers": bot.notifier.handler_count(),
    }


@router.get("/api/rules")
async def get_rules(request: Request):
    """List the active rules."""
    bot = request.app.state.bot
    return {
        "rules": [
            dict(rule.to_dict(), matcher_id=rule.matcher_id())
            for rule in bot.engine.get_rules()
        ]
    }


@router.post("/api/rules/validate")
async def validate_rule(request: Request, data: RuleValidation):
    """Validate a rule including its actions."""
    bot = request.app.state.bot

    try:
        rule = Rule.from_dict(data.rule)
        rule.validate(bot.formatter.validate)
        for action in rule.actions:
            bot.validate_action(action)
    except BotError as e:
        return {"valid": False, "error": e.message, "details": e.details}

    return {"valid": True, "matcher_id": rule.matcher_id()}


@router.post("/api/test-message")
async def test_message(request: Request, test_data: TestMessage):
    """Check which rules a message would trigger, optionally executing them."""
    bot = request.app.state.bot

    if test_data.execute:
        results = bot.test_message(
            test_data.message,
            channel=test_data.channel,
            user=test_data.username,
            badges=test_data.badges,
            connection=request.app.state.connection,
            execute=True,
        )
        return {
            "executed": [
                {
                    "matcher_id": r.rule_id,
                    "actions_run": r.actions_run,
                    "skipped": r.skipped,
                    "stopped": r.stopped,
                    "error": r.error,
                    "cooldown_recorded": r.cooldown_recorded,
                }
                for r in results
            ]
        }

    rules = bot.test_message(
        test_data.message,
        channel=test_data.channel,
        user=test_data.username,
        badges=test_data.badges,
    )
    return {
        "matches": [
            {"matcher_id": r.matcher_id(), "description": r.description}
            for r in rules
        ]
    }


@router.get("/api/actions")
async def get_actions(request: Request):
    """Get documentation of all available actions."""
    bot = request.app.state.bot
    return {"actions": [doc.to_dict() for doc in bot.registry.documentation()]}


@router.post("/api/events/{event}")
async def raise_event(request: Request, event: str, event_request: Optional[EventRequest] = None):
    """Raise a synthetic event through the dispatcher."""
    bot = request.app.state.bot

    if event not in KNOWN_EVENTS:
        raise HTTPException(status_code=404, detail=f"Unknown event: {event}")

    fields = event_request.fields if event_request is not None else {}
    results = bot.dispatcher.handle_message(
        request.app.state.connection,
        None,
        event,
        FieldCollection(fields),
    )

    logger.info("Raised event via API", extra={"event": event, "rules": len(results)})

    return {"event": event, "executed": [r.rule_id for r in results if not r.skipped]}
