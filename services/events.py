"""
Event Notifier - Fan-out of named events
========================================

Modules wanting visibility into every raised event register a handler
here. Handlers run detached from message processing; their errors are
logged and never reach the caller raising the event.
"""

import threading
from typing import Callable, List, Optional

from core.fields import FieldCollection
from core.logging import get_logger

logger = get_logger("services.events")

EventHandler = Callable[[str, FieldCollection], None]


class EventNotifier:
    """
    Registry of event handlers.

    Example:
        notifier = EventNotifier()
        unregister = notifier.register(lambda event, data: print(event))
        notifier.notify("raid", FieldCollection({"channel": "#test"}))
    """

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self._lock = threading.Lock()

    def register(self, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler called for every event.

        Returns:
            Callable removing the handler again
        """
        with self._lock:
            self._handlers.append(handler)

        def unregister() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unregister

    def handler_count(self) -> int:
        with self._lock:
            return len(self._handlers)

    def notify(self, event: str, event_data: Optional[FieldCollection] = None) -> threading.Thread:
        """
        Hand the event to all handlers in a background thread.

        Every handler receives its own copy of the event data.

        Returns:
            The started thread
        """
        with self._lock:
            handlers = list(self._handlers)

        data = event_data if event_data is not None else FieldCollection()

        thread = threading.Thread(
            target=self._run_handlers,
            args=(handlers, event, data.clone()),
            daemon=True,
            name=f"event-{event}",
        )
        thread.start()
        return thread

    def _run_handlers(self, handlers: List[EventHandler], event: str, event_data: FieldCollection) -> None:
        for handler in handlers:
            try:
                handler(event, event_data.clone())
            except Exception as e:
                logger.error("Event handler failed", extra={"event": event, "error": str(e)}, exc_info=True)
