"""
Action Dispatcher - Executes matched rules
==========================================

Single entry point for inbound messages and synthetic events: finds
the rules firing for them and runs each rule's action chain in order.

Nothing raised while matching or executing reaches the caller. A
failing action ends its own rule's chain, sibling rules still run.
"""

import threading
from dataclasses import dataclass
from typing import List, Optional

from actors.registry import ActionRegistry
from core.exceptions import StopRuleExecution
from core.fields import FieldCollection
from core.locker import KeyedLocker
from core.logging import clear_log_context, get_logger, set_log_context
from core.message import ChatConnection, ChatMessage
from core.timers import TimerStore
from rules.engine import RulesEngine
from rules.rule import Rule, RuleAction

from .events import EventNotifier

logger = get_logger("services.dispatcher")


@dataclass
class RuleExecution:
    """
    Outcome of executing one rule's action chain.

    Attributes:
        rule_id: Matcher ID of the executed rule
        actions_run: Number of actions started
        stopped: Chain ended by StopRuleExecution
        error: Message of the error aborting the chain, if any
        cooldown_recorded: Whether the rule's cooldowns were stored
        skipped: Rule was in cooldown once its execution lock was held
    """
    rule_id: str
    actions_run: int = 0
    skipped: bool = False
    stopped: bool = False
    error: Optional[str] = None
    cooldown_recorded: bool = False


class ActionDispatcher:
    """
    Runs the action chains of matching rules.

    Example:
        dispatcher = ActionDispatcher(engine, registry, timer_store, notifier)
        dispatcher.handle_message(connection, message)
    """

    def __init__(
        self,
        engine: RulesEngine,
        registry: ActionRegistry,
        timer_store: TimerStore,
        notifier: Optional[EventNotifier] = None,
        locker: Optional[KeyedLocker] = None
    ):
        self.engine = engine
        self.registry = registry
        self.timer_store = timer_store
        self.notifier = notifier
        self.locker = locker or KeyedLocker()

    def handle_message(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        event: Optional[str] = None,
        event_data: Optional[FieldCollection] = None
    ) -> List[RuleExecution]:
        """
        Process one inbound message or event.

        Args:
            connection: Outbound chat connection handed to actors
            message: Triggering message, may be None for events
            event: Event name for synthetic events
            event_data: Data attached to the event

        Returns:
            Outcome of every executed rule, in execution order
        """
        if event is not None and self.notifier is not None:
            try:
                self.notifier.notify(event, event_data)
            except Exception as e:
                logger.error("Notifying event handlers failed", extra={"event": event, "error": str(e)})

        try:
            rules = self.engine.get_matching_rules(message, event, event_data)
        except Exception as e:
            logger.error("Finding matching rules failed", extra={"error": str(e)}, exc_info=True)
            return []

        results = []
        for rule in rules:
            rule_data = event_data.clone() if event_data is not None else FieldCollection()
            try:
                results.append(self.execute_rule(connection, message, rule, rule_data))
            except Exception as e:
                logger.error("Executing rule failed", extra={"error": str(e)}, exc_info=True)

        return results

    def execute_rule(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Rule,
        event_data: FieldCollection
    ) -> RuleExecution:
        """
        Run the rule's actions in order and record its cooldowns.

        Cooldowns are checked again under the rule's lock so concurrent
        firings of the same rule cannot both pass them.

        The chain ends at the first action raising. StopRuleExecution
        ends it without failure, any other error also skips recording
        the cooldown. Otherwise cooldowns are recorded unless an action
        asked to prevent them.
        """
        rule_id = rule.matcher_id()
        result = RuleExecution(rule_id=rule_id)
        prevent_cooldown = False

        with self.locker.lock(f"rule-execution/{rule_id}"):
            set_log_context(rule_id=rule_id)
            try:
                if not self.engine.matcher.allows_cooldowns(rule, message, event_data):
                    logger.debug("Rule entered cooldown while waiting for execution")
                    result.skipped = True
                    return result

                logger.debug("Executing rule", extra={"description": rule.description})

                for action in rule.actions:
                    result.actions_run += 1
                    try:
                        prevent_cooldown = self.trigger_action(connection, message, rule, action, event_data) or prevent_cooldown
                    except StopRuleExecution as e:
                        prevent_cooldown = prevent_cooldown or e.prevent_cooldown
                        result.stopped = True
                        break
                    except Exception as e:
                        logger.error(
                            "Error in action",
                            extra={"action": action.type, "error": str(e)},
                            exc_info=True
                        )
                        result.error = str(e)
                        return result

                if not prevent_cooldown:
                    rule.set_cooldown(self.timer_store, message, event_data)
                    result.cooldown_recorded = True

                return result
            finally:
                clear_log_context("rule_id")

    def trigger_action(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Rule,
        action: RuleAction,
        event_data: FieldCollection
    ) -> bool:
        """
        Execute a single action.

        Asynchronous actors are started in a background thread and never
        prevent the cooldown.

        Returns:
            Whether the action asks to prevent the rule cooldown

        Raises:
            ActorNotFoundError: If no actor is registered for the type
            StopRuleExecution: If the actor ends the chain
            Exception: Whatever the actor raises on failure
        """
        actor = self.registry.get(action.type)

        if actor.is_async():
            thread = threading.Thread(
                target=self._run_async,
                args=(actor, connection, message, rule, action, event_data),
                daemon=True,
                name=f"actor-{action.type}",
            )
            thread.start()
            return False

        return bool(actor.execute(connection, message, rule, event_data, action.attributes))

    def _run_async(self, actor, connection, message, rule, action, event_data) -> None:
        set_log_context(rule_id=rule.matcher_id())
        try:
            actor.execute(connection, message, rule, event_data, action.attributes)
        except StopRuleExecution:
            logger.debug("Asynchronous action requested stop, ignored", extra={"action": action.type})
        except Exception as e:
            logger.error(
                "Error in asynchronous action",
                extra={"action": action.type, "error": str(e)},
                exc_info=True
            )
        finally:
            clear_log_context("rule_id")
