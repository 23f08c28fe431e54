"""
Base Actor - Abstract base class for actors
===========================================

This module defines the interface every actor implements and the
documentation model describing an actor's attributes. Actors are the
execution units behind the action types used in rules.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import BotError, ValidationError
from core.fields import FieldCollection
from core.message import ChatConnection, ChatMessage


FIELD_TYPE_BOOL = "bool"
FIELD_TYPE_DURATION = "duration"
FIELD_TYPE_INT64 = "int64"
FIELD_TYPE_STRING = "string"
FIELD_TYPE_STRING_SLICE = "stringslice"

TemplateValidator = Callable[[str], None]
Formatter = Callable[..., str]


@dataclass
class ActionDocumentationField:
    """
    Documentation of a single actor attribute.

    Attributes:
        key (str): Attribute key in the rule configuration
        name (str): Human readable name
        description (str): What the attribute does
        type (str): One of the FIELD_TYPE_* constants
        optional (bool): Whether the attribute may be omitted
        support_template (bool): Whether the value is rendered as template
        default (str): Default value used when omitted
    """
    key: str
    name: str
    description: str
    type: str = FIELD_TYPE_STRING
    optional: bool = False
    support_template: bool = False
    default: str = ""
    default_comment: str = ""
    long: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ActionDocumentation:
    """
    Documentation of an actor.

    Attributes:
        type (str): Action type name used in rules
        name (str): Human readable name
        description (str): What the actor does
        fields (list): Documented attributes
    """
    type: str
    name: str
    description: str
    fields: List[ActionDocumentationField] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "fields": [f.to_dict() for f in self.fields],
        }


_TYPE_CHECKS = {
    FIELD_TYPE_BOOL: FieldCollection.can_bool,
    FIELD_TYPE_DURATION: FieldCollection.can_duration,
    FIELD_TYPE_INT64: FieldCollection.can_int,
    FIELD_TYPE_STRING: FieldCollection.can_string,
    FIELD_TYPE_STRING_SLICE: FieldCollection.can_string_list,
}


class BaseActor(ABC):
    """
    Abstract base class for actors.

    Subclasses must implement:
    - execute(): Run the action for a matched rule

    They may override:
    - is_async(): Return True to be run detached from the rule chain
    - validate(): Check attributes at config load time

    `execute` returns whether the rule's cooldown should be suppressed.
    It raises on failure and raises StopRuleExecution to end the rule's
    action chain without signalling a failure.

    Example:
        class ShoutActor(BaseActor):
            name = "shout"

            def execute(self, connection, message, rule, event_data, attrs):
                connection.send_message(...)
                return False
    """

    name: str = ""
    documentation: Optional[ActionDocumentation] = None

    def __init__(self, formatter: Optional[Formatter] = None):
        """
        Initialize the actor.

        Args:
            formatter: Template renderer for templated attributes
        """
        self.formatter = formatter

    @abstractmethod
    def execute(
        self,
        connection: ChatConnection,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: FieldCollection,
        attrs: FieldCollection
    ) -> bool:
        """
        Execute the action.

        Args:
            connection: Outbound chat connection
            message: Triggering message, None for some events
            rule: Rule the action belongs to
            event_data: Per-rule copy of the event data
            attrs: Action attributes

        Returns:
            True to prevent the rule cooldown from being recorded
        """
        pass

    def is_async(self) -> bool:
        return False

    def validate(self, template_validator: Optional[TemplateValidator], attrs: FieldCollection) -> None:
        """
        Validate attributes against the documented fields.

        Required fields must be present and non-empty, present fields must
        have the documented type, templated fields must parse and unknown
        keys are rejected.

        Raises:
            ValidationError: If the attributes do not validate
        """
        doc_fields = self.documentation.fields if self.documentation else []
        known = {f.key for f in doc_fields}

        unknown = attrs.unknown_keys(known)
        if unknown:
            raise ValidationError("validating attributes: unknown fields", {"actor": self.name, "fields": unknown})

        for doc_field in doc_fields:
            key = doc_field.key
            if key not in attrs:
                if not doc_field.optional:
                    raise ValidationError(
                        "validating attributes: missing field",
                        {"actor": self.name, "field": key}
                    )
                continue

            if not _TYPE_CHECKS[doc_field.type](attrs, key):
                raise ValidationError(
                    "validating attributes: wrong field type",
                    {"actor": self.name, "field": key, "expected": doc_field.type}
                )

            if not doc_field.optional and attrs.get(key) in ("", [], None):
                raise ValidationError(
                    "validating attributes: field must not be empty",
                    {"actor": self.name, "field": key}
                )

            if doc_field.support_template and template_validator is not None:
                templates = (
                    attrs.get_string_list(key)
                    if doc_field.type == FIELD_TYPE_STRING_SLICE
                    else [attrs.get_string(key)]
                )
                for template in templates:
                    try:
                        template_validator(template)
                    except BotError as e:
                        raise ValidationError(
                            f"validating template field: {e.message}",
                            {"actor": self.name, "field": key}
                        )

    def format(
        self,
        template: str,
        message: Optional[ChatMessage],
        rule: Any,
        event_data: Optional[FieldCollection]
    ) -> str:
        """Render a templated attribute."""
        if self.formatter is None:
            return template
        return self.formatter(template, message, rule, event_data)
