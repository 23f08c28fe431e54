"""
Chat Bot - Composition root
===========================

Builds and wires all components from a configuration: timer store,
template formatter, matcher, rules engine, actor registry, event
notifier, dispatcher and chat handler.
"""

from typing import Optional

import httpx

from actors import register_core_actors
from actors.registry import ActionRegistry
from core.config import Config
from core.database import Database, init_database
from core.logging import get_logger
from core.message import ChatConnection, ChatMessage, LogConnection
from core.timers import SQLiteTimerStore, TimerStore
from rules.engine import RulesEngine
from rules.matcher import RuleMatcher
from rules.rule import RuleAction
from rules.templates import MessageFormatter

from .chat_handler import ChatHandler
from .dispatcher import ActionDispatcher
from .events import EventNotifier
from .platform import PlatformClient

logger = get_logger("services.bot")


class ChatBot:
    """
    Fully wired bot instance.

    Example:
        bot = ChatBot(load_config())
        bot.load_rules()
        bot.chat_handler.dispatch(connection, ChatMessage.parse(line))
    """

    def __init__(
        self,
        config: Config,
        timer_store: Optional[TimerStore] = None,
        platform_transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Build all components.

        Args:
            config: Bot configuration
            timer_store: Store to use instead of the configured backend
            platform_transport: HTTP transport for the platform client
        """
        self.config = config
        self.database: Optional[Database] = None

        if timer_store is None:
            timer_store = self._create_timer_store(config)
        self.timer_store = timer_store

        self.formatter = MessageFormatter(config.variables, config.permit_timeout)
        self.platform = PlatformClient(config.platform, transport=platform_transport)
        self.matcher = RuleMatcher(self.timer_store, self.formatter, self.platform)

        self.registry = ActionRegistry()
        self.engine = RulesEngine(
            self.matcher,
            template_validator=self.formatter.validate,
            action_validator=self.validate_action,
        )
        self.notifier = EventNotifier()
        self.dispatcher = ActionDispatcher(self.engine, self.registry, self.timer_store, self.notifier)
        self.chat_handler = ChatHandler(self.dispatcher, self.timer_store, config)

        register_core_actors(
            self.registry,
            formatter=self.formatter,
            timer_store=self.timer_store,
            action_runner=self.dispatcher.trigger_action,
        )

    def _create_timer_store(self, config: Config) -> TimerStore:
        if config.storage.timer_backend == "sqlite":
            self.database = init_database(config.timer_database_path)
            return SQLiteTimerStore(self.database, config.permit_timeout)
        return TimerStore(config.permit_timeout)

    def validate_action(self, action: RuleAction) -> None:
        self.registry.validate_action(action, self.formatter.validate)

    def load_rules(self) -> int:
        """Install the rules of the current configuration."""
        return self.engine.load_from_config(self.config)

    def reload(self, config_path: Optional[str] = None) -> int:
        """
        Reload configuration from disk and swap in its rules.

        The previous rules stay active when the new file is invalid.
        """
        config = self.engine.reload_from_file(config_path or self.config.config_path)
        self.formatter.update_config(config.variables, config.permit_timeout)
        self.timer_store.update_permit_timeout(config.permit_timeout)
        self.config.rules = config.rules
        self.config.variables = config.variables
        self.config.permit_timeout = config.permit_timeout
        logger.info("Configuration reloaded", extra={"rules": len(self.engine)})
        return len(self.engine)

    def test_message(
        self,
        text: str,
        channel: str = "#test",
        user: str = "tester",
        badges: str = "",
        connection: Optional[ChatConnection] = None,
        execute: bool = False
    ):
        """
        Evaluate a chat message against the rules.

        Returns:
            Matching rules, or the execution results when `execute` is set
        """
        tags = {"badges": badges} if badges else {}
        message = ChatMessage.privmsg(f"#{channel.lstrip('#')}", text, user=user, tags=tags)

        if execute:
            return self.dispatcher.handle_message(connection or LogConnection(), message)
        return self.engine.get_matching_rules(message)

    def close(self) -> None:
        self.platform.close()
        if self.database is not None:
            self.database.close()
