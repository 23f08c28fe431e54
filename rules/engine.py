"""
Rules Engine - Live rule set and rule lookup
============================================

This module holds the rule set currently in effect. The set is an
immutable snapshot: (re)loading builds and validates a complete new
snapshot and swaps it in, so matching always sees a consistent list
even while a reload is running concurrently.
"""

import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import httpx

from core.config import Config, load_config
from core.exceptions import BotError, ConfigError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatMessage

from .matcher import RuleMatcher
from .rule import Rule, RuleAction, TemplateValidator


logger = get_logger("rules.engine")

ActionValidator = Callable[[RuleAction], None]


class RulesEngine:
    """
    Container of the live rule set.

    Example:
        engine = RulesEngine(matcher)
        engine.load_rules([{"match_message": "^!ping$", "actions": [...]}])
        for rule in engine.get_matching_rules(message):
            ...
    """

    def __init__(
        self,
        matcher: RuleMatcher,
        template_validator: Optional[TemplateValidator] = None,
        action_validator: Optional[ActionValidator] = None
    ):
        """
        Initialize the engine with an empty rule set.

        Args:
            matcher: Matcher deciding which rules fire
            template_validator: Used to validate rule templates on load
            action_validator: Used to validate every rule action on load
        """
        self.matcher = matcher
        self.template_validator = template_validator
        self.action_validator = action_validator

        self._rules: Tuple[Rule, ...] = ()
        self._write_lock = threading.Lock()

    # === Loading ===

    def build_rules(self, rules: Iterable[Union[Rule, Dict[str, Any]]]) -> Tuple[Rule, ...]:
        """
        Parse and validate rules without installing them.

        Raises:
            ConfigError: If any rule or action is invalid
        """
        built = []
        for idx, entry in enumerate(rules):
            try:
                rule = entry if isinstance(entry, Rule) else Rule.from_dict(entry)
                rule.validate(self.template_validator)
                if self.action_validator is not None:
                    for action in rule.actions:
                        self.action_validator(action)
            except BotError as e:
                raise ConfigError(f"Invalid rule at index {idx}: {e.message}", dict(e.details, index=idx))
            built.append(rule)

        return tuple(built)

    def load_rules(self, rules: Iterable[Union[Rule, Dict[str, Any]]]) -> int:
        """
        Replace the live rule set.

        The current set stays active when validation fails.

        Returns:
            Number of loaded rules

        Raises:
            ConfigError: If any rule or action is invalid
        """
        snapshot = self.build_rules(rules)
        with self._write_lock:
            self._rules = snapshot

        logger.info("Rules loaded", extra={"count": len(snapshot)})
        return len(snapshot)

    def load_from_config(self, config: Config) -> int:
        return self.load_rules(config.rules)

    def reload_from_file(self, config_path: str) -> Config:
        """
        Reload the configuration file and install its rules.

        Returns:
            The freshly loaded configuration
        """
        config = load_config(config_path)
        self.load_from_config(config)
        return config

    def update_subscriptions(self, client: Optional[httpx.Client] = None) -> int:
        """
        Refresh rules having `subscribe_from` set.

        Updated rules are installed as a new snapshot; rules whose
        remote fails to load are kept as they are.

        Returns:
            Number of updated rules
        """
        updated = 0
        new_rules: List[Rule] = []

        for rule in self.get_rules():
            if not rule.subscribe_from:
                new_rules.append(rule)
                continue

            candidate = Rule.from_dict(rule.to_dict())
            try:
                changed = candidate.update_from_subscription(client)
                if changed:
                    candidate.validate(self.template_validator)
            except BotError as e:
                logger.error(
                    "Updating rule from subscription failed",
                    extra={"rule_id": rule.matcher_id(), "url": rule.subscribe_from, "error": str(e)}
                )
                new_rules.append(rule)
                continue

            if changed:
                updated += 1
                new_rules.append(candidate)
            else:
                new_rules.append(rule)

        if updated:
            with self._write_lock:
                self._rules = tuple(new_rules)
            logger.info("Rules updated from subscriptions", extra={"count": updated})

        return updated

    # === Lookup ===

    def get_rules(self) -> Tuple[Rule, ...]:
        """Current snapshot of all rules."""
        return self._rules

    def get_rule(self, matcher_id: str) -> Optional[Rule]:
        """Find a rule by its matcher ID."""
        for rule in self._rules:
            if rule.matcher_id() == matcher_id:
                return rule
        return None

    def get_matching_rules(
        self,
        message: Optional[ChatMessage],
        event: Optional[str] = None,
        event_data: Optional[FieldCollection] = None
    ) -> List[Rule]:
        """
        Find all rules that fire for a message or event.

        Args:
            message: Triggering message
            event: Event name for synthetic events
            event_data: Data attached to the event

        Returns:
            Matching rules in configuration order
        """
        snapshot = self._rules
        return [r for r in snapshot if self.matcher.matches(r, message, event, event_data)]

    def to_dicts(self) -> List[Dict[str, Any]]:
        """Serialize the live rules."""
        return [rule.to_dict() for rule in self._rules]

    def __len__(self) -> int:
        return len(self._rules)
