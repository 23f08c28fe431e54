"""
Rules Module - Rule model, matching and templating
==================================================

This module provides the rule side of the bot:
- Rule and action model with remote subscriptions
- Badge parsing
- Ordered predicate matching
- Jinja2 based message templates
- The live, hot-reloadable rule set
"""

from .badges import BadgeCollection, parse_badge_levels, parse_badges
from .engine import RulesEngine
from .matcher import KNOWN_EVENTS, RuleMatcher
from .rule import Rule, RuleAction
from .templates import MessageFormatter, TemplateFunctionRegistry, register_core_functions

__all__ = [
    "BadgeCollection",
    "parse_badge_levels",
    "parse_badges",
    "RulesEngine",
    "KNOWN_EVENTS",
    "RuleMatcher",
    "Rule",
    "RuleAction",
    "MessageFormatter",
    "TemplateFunctionRegistry",
    "register_core_functions",
]
