"""
Logging Module - Centralized logging configuration
=================================================

This module provides logging setup and utilities including:
- Structured JSON logging
- File and console handlers
- Context-aware logging (rule, channel, actor)
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
import json
import threading


ROOT_LOGGER_NAME = "chat_bot"

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "extra_data"}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs log records as JSON objects for easy parsing and
    integration with log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        fields = _extra_fields(record)
        if fields:
            log_data["fields"] = fields

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if getattr(record, "extra_data", None):
            log_data["context"] = record.extra_data

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Colored console formatter for readable terminal output.

    Uses ANSI color codes to highlight different log levels and
    appends `key=value` pairs for any extra fields.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        formatted = (
            f"{color}{self.BOLD}[{record.levelname}]{self.RESET} "
            f"{timestamp} | {record.name}:{record.lineno} | "
            f"{record.getMessage()}"
        )

        fields = dict(getattr(record, "extra_data", None) or {})
        fields.update(_extra_fields(record))
        if fields:
            formatted += " | " + " ".join(f"{k}={v}" for k, v in sorted(fields.items()))

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class ContextFilter(logging.Filter):
    """
    Logging filter that adds thread-local context to records.

    Installed on the handlers so records propagated from child
    loggers receive the context as well.
    """

    _context = threading.local()

    @classmethod
    def set_context(cls, **kwargs) -> None:
        """Set context values for the current thread."""
        if not hasattr(cls._context, "data"):
            cls._context.data = {}
        cls._context.data.update(kwargs)

    @classmethod
    def clear_context(cls, *keys: str) -> None:
        """Clear the given context keys (all when none given) for the current thread."""
        if not keys or not hasattr(cls._context, "data"):
            cls._context.data = {}
            return
        for key in keys:
            cls._context.data.pop(key, None)

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(self._context, "data", None):
            record.extra_data = self._context.data.copy()
        return True


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter merging static context into every call's `extra`.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect the fields passed through `extra` on a record."""
    return {
        key: value for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
    }


_loggers: Dict[str, logging.Logger] = {}
_configured = False


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    json_format: bool = False,
    console_output: bool = True
) -> None:
    """
    Set up logging configuration for the bot.

    This should be called once at startup, before the first message
    is dispatched.

    Args:
        log_dir: Directory for log files (optional)
        log_level: Minimum log level to capture
        json_format: Use JSON format for file logs
        console_output: Also output to console
    """
    global _configured

    if _configured:
        return

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    context_filter = ContextFilter()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(ColoredFormatter())
        console_handler.addFilter(context_filter)
        root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / "chat-bot.log", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(context_filter)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
                )
            )
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_path / "errors.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        error_handler.addFilter(context_filter)
        root_logger.addHandler(error_handler)

    _configured = True


def get_logger(name: str, **extra) -> LoggerAdapter:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name, placed below the `chat_bot` namespace
        **extra: Extra context to include in all log messages

    Returns:
        LoggerAdapter instance

    Example:
        logger = get_logger("services.dispatcher")
        logger.error("Unable to trigger action", extra={"actor": "respond"})
    """
    prefix = ROOT_LOGGER_NAME + "."
    full_name = name if name.startswith(prefix) else prefix + name

    if full_name not in _loggers:
        _loggers[full_name] = logging.getLogger(full_name)

    return LoggerAdapter(_loggers[full_name], extra)


def set_log_context(**kwargs) -> None:
    """
    Set thread-local logging context.

    Example:
        set_log_context(rule_id=rule.matcher_id())
        logger.info("Executing actions")  # carries rule_id
    """
    ContextFilter.set_context(**kwargs)


def clear_log_context(*keys: str) -> None:
    """Clear thread-local logging context."""
    ContextFilter.clear_context(*keys)
