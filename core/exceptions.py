"""
Exception Definitions - Custom exceptions for Chat Rule Bot
===========================================================

This module defines the custom exceptions used throughout the bot,
plus the sentinel actors raise to end their rule's action chain.
"""


class BotError(Exception):
    """
    Base exception for all bot errors.

    All custom failure exceptions inherit from this base class,
    allowing for easy catching of all application-specific errors.

    Attributes:
        message (str): Human-readable error description
        details (dict): Additional error details for debugging
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(BotError):
    """
    Configuration-related errors.

    Raised when there are issues with:
    - Missing or unreadable configuration files
    - Invalid configuration values
    - Rules or actions failing validation on load
    """
    pass


class DatabaseError(BotError):
    """Timer database errors (connection, query or schema failures)."""
    pass


class TemplateError(BotError):
    """
    Template errors.

    Raised when a template cannot be parsed or fails while rendering.
    """
    pass


class PlatformError(BotError):
    """
    Streaming platform API errors.

    Raised when a platform API call fails, times out or returns
    an unexpected response.
    """
    pass


class ActorError(BotError):
    """Raised by actors when executing an action fails."""
    pass


class ActorNotFoundError(ActorError):
    """Raised when an action references an actor type nobody registered."""
    pass


class DuplicateActorError(ActorError):
    """Raised when two actors try to register under the same name."""
    pass


class ValidationError(BotError):
    """Raised when a rule or action attribute set does not validate."""
    pass


class FieldError(BotError):
    """Base for field collection accessor errors."""
    pass


class ValueNotSetError(FieldError):
    """The requested key is not present in the field collection."""

    def __init__(self, key: str):
        self.key = key
        super().__init__("specified value not found", {"key": key})


class ValueMismatchError(FieldError):
    """The requested key holds a value of a different type."""

    def __init__(self, key: str, expected: str):
        self.key = key
        self.expected = expected
        super().__init__(
            "specified value has different format",
            {"key": key, "expected": expected}
        )


class StopRuleExecution(Exception):
    """
    Sentinel raised by actors to end the current rule gracefully.

    No action after the raising one is executed and no error state is
    recorded. This is not a failure, which is why it does not inherit
    from BotError.

    Attributes:
        prevent_cooldown (bool): Whether the raising action asks to
            suppress the cooldown for this firing
    """

    def __init__(self, prevent_cooldown: bool = False):
        self.prevent_cooldown = prevent_cooldown
        super().__init__("stop rule execution now")
