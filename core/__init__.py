"""
Core Module - Foundation components for the chat rule bot
=========================================================

This module provides the foundational components including:
- Configuration management
- Timer storage (memory and SQLite)
- Logging setup
- Exception handling
- Chat message model
- Attribute collections
"""

from .config import Config, load_config, save_config
from .database import Database, init_database
from .exceptions import (
    BotError,
    ConfigError,
    DatabaseError,
    TemplateError,
    PlatformError,
    ActorError,
    ActorNotFoundError,
    ValidationError,
    StopRuleExecution,
)
from .fields import FieldCollection
from .logging import setup_logging, get_logger
from .message import ChatConnection, ChatMessage
from .timers import SQLiteTimerStore, TimerStore, TimerType

__all__ = [
    "Config",
    "load_config",
    "save_config",
    "Database",
    "init_database",
    "BotError",
    "ConfigError",
    "DatabaseError",
    "TemplateError",
    "PlatformError",
    "ActorError",
    "ActorNotFoundError",
    "ValidationError",
    "StopRuleExecution",
    "FieldCollection",
    "setup_logging",
    "get_logger",
    "ChatConnection",
    "ChatMessage",
    "SQLiteTimerStore",
    "TimerStore",
    "TimerType",
]
