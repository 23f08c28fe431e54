"""
Services Module - Message processing services
=============================================

This module provides the services around the rule core:
- Action Dispatcher: Executes action chains of matching rules
- Event Notifier: Fan-out of named events
- Chat Handler: Routes inbound chat lines to the dispatcher
- Platform Client: Live-status lookups
- Chat Bot: Wires everything from a configuration
"""

from .bot import ChatBot
from .chat_handler import ChatHandler
from .dispatcher import ActionDispatcher, RuleExecution
from .events import EventNotifier
from .platform import PlatformClient

__all__ = [
    "ChatBot",
    "ChatHandler",
    "ActionDispatcher",
    "RuleExecution",
    "EventNotifier",
    "PlatformClient",
]
