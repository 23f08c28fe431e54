"""
Template Formatter - Jinja2 message templates
=============================================

This module renders the templates used in rules and actions. Templates
are rendered in a Jinja2 sandbox against:
- the configured `variables` and `permitTimeout`
- the event data handed to the action
- `channel`, `username`, `user_id` and `msg` derived from the message

Functions exposed to templates come from a registry; every function is
produced per render by a getter receiving the message, rule and fields.
"""

import re
import threading
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from jinja2 import TemplateError as JinjaTemplateError
from jinja2.sandbox import SandboxedEnvironment

from core.exceptions import ConfigError, TemplateError
from core.fields import FieldCollection
from core.logging import get_logger
from core.message import ChatMessage, derive_channel, derive_user


logger = get_logger("rules.templates")

# Templates may be written on several lines, chat messages may not
_STRIP_NEWLINE = re.compile(r"\s*\n\s*")

FunctionGetter = Callable[[Optional[ChatMessage], Any, Dict[str, Any]], Callable]


def generic_function(fn: Callable) -> FunctionGetter:
    """Wrap a function not depending on message, rule or fields into a getter."""
    return lambda message, rule, fields: fn


def _finalize(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return value


class TemplateFunctionRegistry:
    """
    Registry of functions available inside templates.

    Example:
        registry = TemplateFunctionRegistry()
        registry.register("shout", generic_function(lambda s: s.upper()))
    """

    def __init__(self):
        self._getters: Dict[str, FunctionGetter] = {}
        self._lock = threading.Lock()

    def register(self, name: str, getter: FunctionGetter) -> None:
        """
        Register a template function getter.

        Raises:
            ConfigError: If the name is already registered
        """
        with self._lock:
            if name in self._getters:
                raise ConfigError(f"Duplicate registration of {name!r} template function")
            self._getters[name] = getter

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._getters

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._getters)

    def get_functions(
        self,
        message: Optional[ChatMessage],
        rule: Any,
        fields: Dict[str, Any]
    ) -> Dict[str, Callable]:
        """Build the function map for one render."""
        with self._lock:
            getters = dict(self._getters)
        return {name: getter(message, rule, fields) for name, getter in getters.items()}


def _arg_function(message: Optional[ChatMessage], rule: Any, fields: Dict[str, Any]) -> Callable:
    def arg(idx: int) -> str:
        parts = (message.trailing if message else "").split(" ")
        if len(parts) <= idx:
            raise TemplateError("argument not found", {"index": idx})
        return parts[idx]
    return arg


def _group_function(message: Optional[ChatMessage], rule: Any, fields: Dict[str, Any]) -> Callable:
    def group(idx: int, fallback: Optional[str] = None) -> str:
        pattern = rule.get_match_message() if rule is not None else None
        match = pattern.search(message.trailing) if pattern and message else None
        if match is None or idx > len(match.groups()):
            raise TemplateError("group not found", {"index": idx})

        value = match.group(idx) or ""
        if value == "" and fallback is not None:
            return fallback
        return value
    return group


def _tag_function(message: Optional[ChatMessage], rule: Any, fields: Dict[str, Any]) -> Callable:
    def tag(name: str) -> str:
        if message is None:
            return ""
        return message.tags.get(name, "")
    return tag


def fix_username(username: str) -> str:
    """Strip leading `@` and `#` from a user or channel name."""
    return username.lstrip("@#")


def format_duration_units(seconds: Any, *units: str) -> str:
    """
    Format a duration in hours, minutes and seconds.

    Units are given in that order; an empty unit name omits the part.

    Example:
        format_duration_units(3725, "hours", "minutes", "")  # "1 hours, 2 minutes"
    """
    if isinstance(seconds, timedelta):
        seconds = seconds.total_seconds()

    left = int(seconds)
    parts = []
    for idx, div in enumerate((3600, 60, 1)):
        part, left = divmod(left, div)
        if idx >= len(units) or not units[idx]:
            continue
        parts.append(f"{part} {units[idx]}")

    return ", ".join(parts)


def register_core_functions(registry: TemplateFunctionRegistry) -> None:
    """Register the bundled template functions."""
    registry.register("arg", _arg_function)
    registry.register("group", _group_function)
    registry.register("tag", _tag_function)
    registry.register("fixUsername", generic_function(fix_username))
    registry.register("formatDuration", generic_function(format_duration_units))


class MessageFormatter:
    """
    Renders message templates.

    Instances are callable with the same signature as `format` so they
    can be handed to actors as plain formatter functions.

    Example:
        formatter = MessageFormatter(variables={"greeting": "Hi"})
        formatter.format("{{ greeting }} {{ username }}!", message)
    """

    def __init__(
        self,
        variables: Optional[Dict[str, Any]] = None,
        permit_timeout: timedelta = timedelta(minutes=1),
        functions: Optional[TemplateFunctionRegistry] = None
    ):
        """
        Initialize the formatter.

        Args:
            variables: Global template variables from the configuration
            permit_timeout: Exposed to templates as `permitTimeout` seconds
            functions: Function registry, the bundled functions when None
        """
        self.variables = dict(variables or {})
        self.permit_timeout = permit_timeout

        if functions is None:
            functions = TemplateFunctionRegistry()
            register_core_functions(functions)
        self.functions = functions

        self._env = SandboxedEnvironment(finalize=_finalize, autoescape=False)
        self._lock = threading.Lock()

    def update_config(self, variables: Dict[str, Any], permit_timeout: timedelta) -> None:
        """Swap in variables and permit timeout after a config reload."""
        with self._lock:
            self.variables = dict(variables or {})
            self.permit_timeout = permit_timeout

    def build_fields(
        self,
        message: Optional[ChatMessage],
        fields: Optional[FieldCollection] = None
    ) -> Dict[str, Any]:
        """Assemble the data a template is rendered against."""
        with self._lock:
            data: Dict[str, Any] = dict(self.variables)
            data["permitTimeout"] = int(self.permit_timeout.total_seconds())

        if fields is not None:
            data.update(fields.data())

        data["channel"] = derive_channel(message, fields)
        data["username"] = derive_user(message, fields)

        if message is not None:
            data["msg"] = message
            if message.tags.get("user-id"):
                data["user_id"] = message.tags["user-id"]

        return data

    def format(
        self,
        template: str,
        message: Optional[ChatMessage] = None,
        rule: Any = None,
        fields: Optional[FieldCollection] = None
    ) -> str:
        """
        Render a template.

        Args:
            template: Template source
            message: Message the template refers to
            rule: Rule the template belongs to, needed by `group`
            fields: Event data merged into the template data

        Returns:
            Rendered and stripped text

        Raises:
            TemplateError: If the template cannot be parsed or rendered
        """
        data = self.build_fields(message, fields)
        source = _STRIP_NEWLINE.sub(" ", template)

        try:
            compiled = self._env.from_string(source)
        except JinjaTemplateError as e:
            raise TemplateError(f"parse template: {e}", {"template": template})

        context = dict(data)
        context.update(self.functions.get_functions(message, rule, data))

        try:
            return compiled.render(context).strip()
        except TemplateError:
            raise
        except Exception as e:
            raise TemplateError(f"execute template: {e}", {"template": template})

    __call__ = format

    def validate(self, template: str) -> None:
        """
        Parse a template without rendering it.

        Raises:
            TemplateError: If the template does not parse
        """
        try:
            self._env.parse(_STRIP_NEWLINE.sub(" ", template))
        except JinjaTemplateError as e:
            raise TemplateError(f"parse template: {e}", {"template": template})
