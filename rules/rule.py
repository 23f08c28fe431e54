"""
Rule Model - User-authored rules and their actions
==================================================

A rule combines optional match criteria, cooldown settings and an
ordered list of actions. Absent criteria never exclude a rule, only
criteria which are set can reject a match.

Rules are identified by their UUID or, when none is assigned, by a
content hash stable across restarts so cooldowns carry over.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Pattern
from urllib.parse import urlparse

import httpx
import yaml

from core.exceptions import BotError, ValidationError
from core.fields import FieldCollection, format_duration, parse_duration
from core.logging import get_logger
from core.message import ChatMessage, derive_channel, derive_user
from core.timers import TimerStore, TimerType


logger = get_logger("rules.rule")

REMOTE_RULE_FETCH_TIMEOUT = 5.0

TemplateValidator = Callable[[str], None]

_DURATION_FIELDS = ("cooldown", "channel_cooldown", "user_cooldown")
_LIST_FIELDS = (
    "skip_cooldown_for", "match_channels", "match_users",
    "disable_on_match_messages", "disable_on", "enable_on",
)
_STRING_FIELDS = ("uuid", "description", "subscribe_from", "match_event", "match_message", "disable_on_template")
_BOOL_FIELDS = ("disable", "disable_on_offline", "disable_on_permit")


@dataclass
class RuleAction:
    """
    One step of a rule's action chain.

    Attributes:
        type: Name of the actor executing this action
        attributes: Actor specific settings
    """
    type: str
    attributes: FieldCollection = field(default_factory=FieldCollection)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleAction":
        """
        Create an action from a config mapping.

        Raises:
            ValidationError: If the mapping has no type
        """
        if not isinstance(data, dict) or not data.get("type"):
            raise ValidationError("Action requires a type", {"action": data})

        attributes = data.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise ValidationError("Action attributes must be a mapping", {"type": data["type"]})

        return cls(type=str(data["type"]), attributes=FieldCollection(attributes))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "attributes": self.attributes.data()}


@dataclass
class Rule:
    """
    A rule from the bot configuration.

    Only criteria that are set take part in matching. Compiled
    regular expressions are cached per source pattern.
    """
    uuid: str = ""
    description: str = ""
    subscribe_from: Optional[str] = None

    actions: List[RuleAction] = field(default_factory=list)

    cooldown: Optional[timedelta] = None
    channel_cooldown: Optional[timedelta] = None
    user_cooldown: Optional[timedelta] = None
    skip_cooldown_for: List[str] = field(default_factory=list)

    match_channels: List[str] = field(default_factory=list)
    match_event: Optional[str] = None
    match_message: Optional[str] = None
    match_users: List[str] = field(default_factory=list)

    disable_on_match_messages: List[str] = field(default_factory=list)

    disable: Optional[bool] = None
    disable_on_offline: Optional[bool] = None
    disable_on_permit: Optional[bool] = None
    disable_on_template: Optional[str] = None
    disable_on: List[str] = field(default_factory=list)
    enable_on: List[str] = field(default_factory=list)

    _match_message_cache: Optional[tuple] = field(default=None, init=False, repr=False, compare=False)
    _disable_messages_cache: Optional[tuple] = field(default=None, init=False, repr=False, compare=False)

    # === Identity ===

    def matcher_id(self) -> str:
        """Return the UUID or a content hash when no UUID is set."""
        if self.uuid:
            return self.uuid
        return self.hash()

    def hash(self) -> str:
        """Stable digest over everything except the UUID."""
        data = self.to_dict()
        data.pop("uuid", None)
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
        return "sha256:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()

    # === Regular expressions ===

    def get_match_message(self) -> Optional[Pattern]:
        """
        Compiled `match_message` expression.

        Returns:
            Pattern or None when unset or not compilable
        """
        if self.match_message is None:
            return None

        try:
            return self.compiled_match_message()
        except re.error as e:
            logger.error("Unable to compile expression", extra={"pattern": self.match_message, "error": str(e)})
            return None

    def compiled_match_message(self) -> Pattern:
        """
        Compiled `match_message` expression.

        Raises:
            re.error: If the pattern does not compile
        """
        cache = self._match_message_cache
        if cache is None or cache[0] != self.match_message:
            cache = (self.match_message, re.compile(self.match_message))
            self._match_message_cache = cache
        return cache[1]

    def compiled_disable_messages(self) -> List[Pattern]:
        """
        Compiled `disable_on_match_messages` expressions.

        Raises:
            re.error: If any pattern does not compile
        """
        sources = tuple(self.disable_on_match_messages)
        cache = self._disable_messages_cache
        if cache is None or cache[0] != sources:
            cache = (sources, [re.compile(p) for p in sources])
            self._disable_messages_cache = cache
        return cache[1]

    # === Cooldowns ===

    def set_cooldown(
        self,
        timer_store: TimerStore,
        message: Optional[ChatMessage],
        event_data: Optional[FieldCollection] = None
    ) -> None:
        """
        Record the configured cooldowns after the rule was executed.

        Channel and user cooldowns are only recorded when the channel
        or user can be derived from the message or event data.
        """
        rule_id = self.matcher_id()
        now = timer_store.now()
        channel = derive_channel(message, event_data)
        user = derive_user(message, event_data)

        scopes = [
            (self.cooldown, "", "rule"),
            (self.channel_cooldown, channel, "channel"),
            (self.user_cooldown, user, "user"),
        ]

        for duration, scope, name in scopes:
            if duration is None or (name != "rule" and not scope):
                continue

            try:
                timer_store.add_cooldown(TimerType.COOLDOWN, scope, rule_id, now + duration.total_seconds())
            except BotError as e:
                logger.error(f"Setting {name} rule cooldown failed", extra={"rule_id": rule_id, "error": str(e)})

    # === Validation ===

    def validate(self, template_validator: Optional[TemplateValidator] = None) -> None:
        """
        Execute basic checks on the validity of the rule.

        Args:
            template_validator: Function raising on unparsable templates

        Raises:
            ValidationError: If a pattern or template is invalid
        """
        if self.match_message is not None:
            try:
                re.compile(self.match_message)
            except re.error as e:
                raise ValidationError(f"compiling match_message field regex: {e}", {"rule": self.matcher_id()})

        for pattern in self.disable_on_match_messages:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValidationError(
                    f"compiling disable_on_match_messages field regex: {e}",
                    {"rule": self.matcher_id(), "pattern": pattern}
                )

        if self.disable_on_template and template_validator is not None:
            try:
                template_validator(self.disable_on_template)
            except BotError as e:
                raise ValidationError(
                    f"parsing disable_on_template template: {e.message}",
                    {"rule": self.matcher_id()}
                )

    # === Remote subscription ===

    def update_from_subscription(self, client: Optional[httpx.Client] = None) -> bool:
        """
        Fetch the remote rule definition and replace this rule with it.

        Args:
            client: HTTP client to use, a short-lived one when None

        Returns:
            True when the rule content changed

        Raises:
            BotError: If fetching or decoding the remote rule fails
        """
        if not self.subscribe_from:
            return False

        prev_hash = self.hash()
        url = self.subscribe_from

        try:
            if client is None:
                with httpx.Client(timeout=REMOTE_RULE_FETCH_TIMEOUT) as own_client:
                    response = own_client.get(url)
            else:
                response = client.get(url, timeout=REMOTE_RULE_FETCH_TIMEOUT)
        except httpx.HTTPError as e:
            raise BotError(f"executing request: {e}", {"url": url})

        if response.status_code != 200:
            raise BotError(f"unexpected HTTP status {response.status_code}", {"url": url})

        content_type = _content_type(url, response.headers.get("content-type", ""))
        try:
            if content_type == "json":
                data = json.loads(response.text)
            else:
                data = yaml.safe_load(response.text)
        except (ValueError, yaml.YAMLError) as e:
            raise BotError(f"decoding remote rule: {e}", {"url": url})

        new_rule = Rule.from_dict(data)
        if new_rule.hash() == prev_hash:
            return False

        for f in dataclass_fields(self):
            setattr(self, f.name, getattr(new_rule, f.name))

        logger.info("Rule updated from subscription", extra={"url": url, "rule_id": self.matcher_id()})
        return True

    # === Serialization ===

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """
        Create a rule from a config mapping.

        Raises:
            ValidationError: If a value has the wrong type
        """
        if not isinstance(data, dict):
            raise ValidationError("Rule must be a mapping", {"rule": data})

        rule = cls()

        for key in _STRING_FIELDS:
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"{key} must be a string", {"value": value})
            setattr(rule, key, value)

        for key in _BOOL_FIELDS:
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be a boolean", {"value": value})
            setattr(rule, key, value)

        for key in _LIST_FIELDS:
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, list):
                raise ValidationError(f"{key} must be a list", {"value": value})
            setattr(rule, key, [str(v) for v in value])

        for key in _DURATION_FIELDS:
            value = data.get(key)
            if value is None:
                continue
            try:
                setattr(rule, key, parse_duration(value))
            except ValueError as e:
                raise ValidationError(f"{key}: {e}")

        rule.uuid = rule.uuid or ""
        rule.description = rule.description or ""
        rule.actions = [RuleAction.from_dict(a) for a in data.get("actions") or []]

        unknown = sorted(set(data) - {f.name for f in dataclass_fields(cls)})
        if unknown:
            logger.warning("Ignoring unknown rule keys", extra={"keys": unknown})

        return rule

    def to_dict(self) -> Dict[str, Any]:
        """Convert the rule into a YAML/JSON friendly mapping, omitting unset values."""
        out: Dict[str, Any] = {}

        for key in _STRING_FIELDS + _BOOL_FIELDS:
            value = getattr(self, key)
            if value is not None and value != "":
                out[key] = value

        for key in _LIST_FIELDS:
            value = getattr(self, key)
            if value:
                out[key] = list(value)

        for key in _DURATION_FIELDS:
            value = getattr(self, key)
            if value is not None:
                out[key] = format_duration(value)

        if self.actions:
            out["actions"] = [a.to_dict() for a in self.actions]

        return out


def _content_type(url: str, header: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"

    mime = header.split(";")[0].strip()
    if mime == "application/json":
        return "json"
    if mime in ("application/yaml", "application/x-yaml", "text/x-yaml"):
        return "yaml"

    raise BotError("no valid file type detected", {"url": url, "content_type": header})
