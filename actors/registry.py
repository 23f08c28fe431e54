"""
Action Registry - Name-keyed table of actor factories
=====================================================

This module provides the registry resolving action type names used in
rules into actor instances. Registration happens once at startup by
the composition root; lookups happen for every executed action.
"""

import threading
from typing import Callable, Dict, List, Optional

from .base import ActionDocumentation, BaseActor, TemplateValidator
from core.exceptions import ActorNotFoundError, BotError, DuplicateActorError, ValidationError
from core.logging import get_logger

logger = get_logger("actors.registry")

ActorFactory = Callable[[], BaseActor]


class ActionRegistry:
    """
    Registry of available actors.

    Example:
        registry = ActionRegistry()
        registry.register("respond", lambda: RespondActor(formatter))

        actor = registry.get("respond")
    """

    def __init__(self):
        self._factories: Dict[str, ActorFactory] = {}
        self._documentation: Dict[str, ActionDocumentation] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        factory: ActorFactory,
        documentation: Optional[ActionDocumentation] = None
    ) -> None:
        """
        Register an actor factory.

        Args:
            name: Action type name used in rules
            factory: Callable returning an actor instance
            documentation: Actor documentation, taken from the actor
                class when omitted

        Raises:
            DuplicateActorError: If the name is already registered
        """
        with self._lock:
            if name in self._factories:
                raise DuplicateActorError(f"Duplicate registration of {name!r} actor")
            self._factories[name] = factory

        if documentation is None:
            documentation = factory().documentation

        if documentation is not None:
            with self._lock:
                self._documentation[name] = documentation

        logger.debug(f"Registered actor: {name}")

    def get(self, name: str) -> BaseActor:
        """
        Create the actor registered for an action type.

        Raises:
            ActorNotFoundError: If no actor is registered for the name
        """
        with self._lock:
            factory = self._factories.get(name)

        if factory is None:
            raise ActorNotFoundError(
                f"Unknown action type: {name}",
                details={"available_actions": ", ".join(self.names())}
            )

        return factory()

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._factories

    def names(self) -> List[str]:
        """Registered action type names, sorted."""
        with self._lock:
            return sorted(self._factories)

    def documentation(self) -> List[ActionDocumentation]:
        """Documentation of all documented actors, sorted by type."""
        with self._lock:
            return [self._documentation[n] for n in sorted(self._documentation)]

    def validate_action(self, action, template_validator: Optional[TemplateValidator] = None) -> None:
        """
        Validate a rule action against its actor.

        Raises:
            ValidationError: If the type is unknown or attributes are invalid
        """
        try:
            actor = self.get(action.type)
        except ActorNotFoundError as e:
            raise ValidationError(e.message, {"type": action.type})

        try:
            actor.validate(template_validator, action.attributes)
        except ValidationError:
            raise
        except BotError as e:
            raise ValidationError(e.message, dict(e.details, type=action.type))
