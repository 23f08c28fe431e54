"""
Rule Matcher - Decides whether a rule fires for a message or event
==================================================================

The decision is an ordered chain of independent predicates; the first
one objecting rejects the rule. Any error while evaluating a predicate
rejects the rule as well so a broken rule can neither crash message
processing nor fire unintentionally.
"""

from typing import Callable, List, Optional, Tuple

from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatMessage, derive_channel, derive_user
from core.timers import TimerStore, TimerType

from .badges import BadgeCollection, parse_badge_levels
from .rule import Rule


logger = get_logger("rules.matcher")

# Events carrying chat text which stay subject to message matchers
MESSAGE_EVENTS = ("bits", "resub")

KNOWN_EVENTS = [
    "ban", "bits", "clearchat", "giftpaidupgrade", "host", "join", "part",
    "permit", "raid", "resub", "sub", "subgift", "submysterygift", "timeout",
    "whisper", "category_update", "stream_offline", "stream_online",
    "title_update", "custom",
]


class MatchContext:
    """Per-evaluation data shared by all predicates."""

    __slots__ = ("rule", "message", "event", "event_data", "badges", "channel", "user")

    def __init__(
        self,
        rule: Rule,
        message: Optional[ChatMessage],
        event: Optional[str],
        event_data: Optional[FieldCollection]
    ):
        self.rule = rule
        self.message = message
        self.event = event
        self.event_data = event_data
        self.badges: BadgeCollection = parse_badge_levels(message)
        self.channel = derive_channel(message, event_data)
        self.user = derive_user(message, event_data)

    @property
    def trailing(self) -> Optional[str]:
        return self.message.trailing if self.message is not None else None


class RuleMatcher:
    """
    Evaluates rules against messages.

    Attributes:
        timer_store: Store consulted for cooldowns and permits
        formatter: Template renderer used for `disable_on_template`
        platform_client: Object providing `has_live_stream(channel)`
    """

    def __init__(self, timer_store: TimerStore, formatter: Callable = None, platform_client=None):
        self.timer_store = timer_store
        self.formatter = formatter
        self.platform_client = platform_client

        self._predicates: List[Tuple[str, Callable[[MatchContext], bool]]] = [
            ("disable", self._allow_disable),
            ("channel whitelist", self._allow_channel_whitelist),
            ("user whitelist", self._allow_user_whitelist),
            ("event", self._allow_event_match),
            ("message whitelist", self._allow_message_whitelist),
            ("message blacklist", self._allow_message_blacklist),
            ("badge blacklist", self._allow_badge_blacklist),
            ("badge whitelist", self._allow_badge_whitelist),
            ("permit", self._allow_disable_on_permit),
            ("rule cooldown", self._allow_rule_cooldown),
            ("channel cooldown", self._allow_channel_cooldown),
            ("user cooldown", self._allow_user_cooldown),
            ("template", self._allow_disable_on_template),
            ("offline", self._allow_disable_on_offline),
        ]

    def matches(
        self,
        rule: Rule,
        message: Optional[ChatMessage],
        event: Optional[str] = None,
        event_data: Optional[FieldCollection] = None
    ) -> bool:
        """
        Check whether the rule should be executed.

        Never raises: evaluation errors are logged and count as
        non-match.

        Args:
            rule: Rule to check
            message: Triggering message, may be None for events
            event: Event name for synthetic events
            event_data: Data attached to the event

        Returns:
            True if every predicate allows execution
        """
        try:
            ctx = MatchContext(rule, message, event, event_data)
            rule_id = rule.matcher_id()
        except Exception as e:
            logger.error("Unable to prepare rule evaluation", extra={"error": str(e)}, exc_info=True)
            return False

        for name, predicate in self._predicates:
            try:
                allowed = predicate(ctx)
            except Exception as e:
                logger.error(
                    f"Error in {name} check, rejecting rule",
                    extra={"rule_id": rule_id, "error": str(e)},
                    exc_info=True
                )
                return False

            if not allowed:
                logger.debug(f"Non-Match: {name}", extra={"rule_id": rule_id})
                return False

        return True

    def allows_cooldowns(
        self,
        rule: Rule,
        message: Optional[ChatMessage],
        event_data: Optional[FieldCollection] = None
    ) -> bool:
        """
        Re-run only the rule, channel and user cooldown checks.

        Used by the dispatcher while holding the rule's execution lock,
        where a concurrent firing may have recorded a cooldown since the
        rule matched. Errors count as not allowed.
        """
        try:
            ctx = MatchContext(rule, message, None, event_data)
            return (
                self._allow_rule_cooldown(ctx)
                and self._allow_channel_cooldown(ctx)
                and self._allow_user_cooldown(ctx)
            )
        except Exception as e:
            logger.error("Error in cooldown check, rejecting rule", extra={"error": str(e)}, exc_info=True)
            return False

    # === Predicates ===

    def _allow_disable(self, ctx: MatchContext) -> bool:
        return not ctx.rule.disable

    def _allow_channel_whitelist(self, ctx: MatchContext) -> bool:
        if not ctx.rule.match_channels:
            return True

        if not ctx.channel:
            return False

        return (
            ctx.channel in ctx.rule.match_channels
            or ctx.channel.lstrip("#") in ctx.rule.match_channels
        )

    def _allow_user_whitelist(self, ctx: MatchContext) -> bool:
        if not ctx.rule.match_users:
            return True

        return bool(ctx.user) and ctx.user.lower() in ctx.rule.match_users

    def _allow_event_match(self, ctx: MatchContext) -> bool:
        wanted = ctx.rule.match_event or ""
        given = ctx.event or ""

        if wanted == given:
            return True

        return wanted == "" and given in MESSAGE_EVENTS

    def _allow_message_whitelist(self, ctx: MatchContext) -> bool:
        if ctx.rule.match_message is None:
            return True

        pattern = ctx.rule.compiled_match_message()
        return ctx.trailing is not None and pattern.search(ctx.trailing) is not None

    def _allow_message_blacklist(self, ctx: MatchContext) -> bool:
        if not ctx.rule.disable_on_match_messages:
            return True

        patterns = ctx.rule.compiled_disable_messages()
        if ctx.trailing is None:
            return True

        return not any(p.search(ctx.trailing) for p in patterns)

    def _allow_badge_blacklist(self, ctx: MatchContext) -> bool:
        return not ctx.badges.has_any(ctx.rule.disable_on)

    def _allow_badge_whitelist(self, ctx: MatchContext) -> bool:
        if not ctx.rule.enable_on:
            return True
        return ctx.badges.has_any(ctx.rule.enable_on)

    def _allow_disable_on_permit(self, ctx: MatchContext) -> bool:
        if not ctx.rule.disable_on_permit or not ctx.channel:
            return True
        return not self.timer_store.has_permit(ctx.channel, ctx.user)

    def _allow_rule_cooldown(self, ctx: MatchContext) -> bool:
        if ctx.rule.cooldown is None:
            return True
        return self._allow_cooldown(ctx, "")

    def _allow_channel_cooldown(self, ctx: MatchContext) -> bool:
        if ctx.rule.channel_cooldown is None or not ctx.channel:
            return True
        return self._allow_cooldown(ctx, ctx.channel)

    def _allow_user_cooldown(self, ctx: MatchContext) -> bool:
        if ctx.rule.user_cooldown is None or not ctx.user:
            return True
        return self._allow_cooldown(ctx, ctx.user)

    def _allow_cooldown(self, ctx: MatchContext, scope: str) -> bool:
        if not self.timer_store.in_cooldown(TimerType.COOLDOWN, scope, ctx.rule.matcher_id()):
            return True
        return ctx.badges.has_any(ctx.rule.skip_cooldown_for)

    def _allow_disable_on_template(self, ctx: MatchContext) -> bool:
        if not ctx.rule.disable_on_template:
            return True

        result = self.formatter(ctx.rule.disable_on_template, ctx.message, ctx.rule, ctx.event_data)
        return result != "true"

    def _allow_disable_on_offline(self, ctx: MatchContext) -> bool:
        if not ctx.rule.disable_on_offline or not ctx.channel:
            return True
        return bool(self.platform_client.has_live_stream(ctx.channel.lstrip("#")))