"""
Configuration Management - YAML-based configuration with environment overrides
=============================================================================

This module handles all configuration aspects including:
- Loading from YAML files
- Environment variable overrides
- Default values
- Configuration validation
- Saving back to YAML
"""

import os
import yaml
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, List
from dataclasses import dataclass, field, asdict

from .exceptions import ConfigError
from .fields import format_duration, parse_duration


DEFAULT_PERMIT_TIMEOUT = timedelta(minutes=1)


@dataclass
class PlatformConfig:
    """
    Streaming platform API configuration.

    Credentials and connection settings for the Helix-style REST API
    used for live-status checks.
    """
    client_id: str = ""
    token: str = ""  # Loaded from environment
    api_base: str = "https://api.twitch.tv/helix"

    # Request behaviour
    timeout: float = 10.0
    cache_ttl: float = 30.0  # seconds a live-status answer is reused

    def validate(self) -> None:
        """Validate platform configuration parameters."""
        if self.timeout <= 0:
            raise ConfigError(f"Platform timeout must be positive, got {self.timeout}")

        if self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl cannot be negative, got {self.cache_ttl}")

        if not self.api_base.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid platform api_base: {self.api_base}")


@dataclass
class StorageConfig:
    """
    Timer storage configuration.

    Cooldowns and permits live in memory by default; the sqlite backend
    keeps cooldowns across restarts.
    """
    timer_backend: str = "memory"  # memory, sqlite
    database_path: str = ""  # Defaults to <data_dir>/timers.db

    def validate(self) -> None:
        """Validate storage configuration."""
        if self.timer_backend not in ["memory", "sqlite"]:
            raise ConfigError(f"Invalid timer backend: {self.timer_backend}")


@dataclass
class WebConfig:
    """
    Web API configuration.

    Controls the FastAPI server used to inspect rules, validate rule
    definitions and raise synthetic events.
    """
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    def validate(self) -> None:
        """Validate web configuration."""
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"Invalid web port: {self.port}")


@dataclass
class Config:
    """
    Main configuration container.

    Aggregates all configuration sections into a single object
    and provides methods for validating and serializing. Rules are
    kept as raw mappings here and parsed by the rules engine.
    """
    # Application settings
    app_name: str = "Chat Rule Bot"
    version: str = "1.0.0"
    debug: bool = False

    # Bot settings
    channels: List[str] = field(default_factory=list)
    permit_allow_moderator: bool = False
    permit_timeout: timedelta = DEFAULT_PERMIT_TIMEOUT
    variables: Dict[str, Any] = field(default_factory=dict)
    rules: List[Dict[str, Any]] = field(default_factory=list)

    # Configuration sections
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    web: WebConfig = field(default_factory=WebConfig)

    # Paths (set at runtime)
    config_path: str = ""
    config_dir: str = ""
    data_dir: str = ""
    log_dir: str = ""

    def validate(self) -> None:
        """
        Validate all configuration sections.

        Raises:
            ConfigError: If any configuration section is invalid
        """
        if self.permit_timeout <= timedelta(0):
            raise ConfigError("permit_timeout must be positive")

        if not isinstance(self.rules, list):
            raise ConfigError("rules must be a list of rule mappings")

        for idx, rule in enumerate(self.rules):
            if not isinstance(rule, dict):
                raise ConfigError("Rule entry is not a mapping", {"index": idx})

        self.platform.validate()
        self.storage.validate()
        self.web.validate()

    @property
    def timer_database_path(self) -> str:
        """Path of the sqlite timer database."""
        if self.storage.database_path:
            return self.storage.database_path
        return str(Path(self.data_dir) / "timers.db")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "app_name": self.app_name,
            "version": self.version,
            "debug": self.debug,
            "channels": list(self.channels),
            "permit_allow_moderator": self.permit_allow_moderator,
            "permit_timeout": format_duration(self.permit_timeout),
            "variables": dict(self.variables),
            "platform": asdict(self.platform),
            "storage": asdict(self.storage),
            "web": asdict(self.web),
            "rules": list(self.rules),
        }


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory path.

    Returns:
        Path to the configuration directory
    """
    if "CHAT_BOT_CONFIG_DIR" in os.environ:
        return Path(os.environ["CHAT_BOT_CONFIG_DIR"])

    if "XDG_CONFIG_HOME" in os.environ:
        return Path(os.environ["XDG_CONFIG_HOME"]) / "chat-rule-bot"

    home = Path.home()
    config_home = home / ".config"

    if config_home.exists():
        return config_home / "chat-rule-bot"

    return home / ".chat-rule-bot"


def get_default_data_dir() -> Path:
    """
    Get the default data directory path.

    Returns:
        Path to the data directory
    """
    if "CHAT_BOT_DATA_DIR" in os.environ:
        return Path(os.environ["CHAT_BOT_DATA_DIR"])

    if "XDG_DATA_HOME" in os.environ:
        return Path(os.environ["XDG_DATA_HOME"]) / "chat-rule-bot"

    return Path.home() / ".local" / "share" / "chat-rule-bot"


def load_config(config_path: Optional[str] = None, load_env: bool = True) -> Config:
    """
    Load configuration from YAML file with environment variable overrides.

    This function loads configuration in the following order:
    1. Default values from dataclass
    2. Values from YAML file
    3. Environment variable overrides

    Args:
        config_path: Path to configuration file (optional)
        load_env: Whether to load environment variable overrides

    Returns:
        Config object with loaded values

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    config = Config()

    config.config_dir = str(get_default_config_dir())
    config.data_dir = str(get_default_data_dir())
    config.log_dir = str(Path(config.data_dir) / "logs")

    if config_path:
        yaml_path = Path(config_path)
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    config.config_path = str(yaml_path)

    if yaml_path.exists():
        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}", {"path": str(yaml_path)})
        except IOError as e:
            raise ConfigError(f"Failed to read config file: {e}", {"path": str(yaml_path)})

        if not isinstance(yaml_config, dict):
            raise ConfigError("Config file must contain a mapping", {"path": str(yaml_path)})

        _apply_yaml_config(config, yaml_config)

    if load_env:
        _apply_env_overrides(config)

    config.validate()

    return config


def _apply_yaml_config(config: Config, yaml_config: Dict[str, Any]) -> None:
    """
    Apply YAML configuration values to Config object.

    Args:
        config: Config object to update
        yaml_config: Dictionary of configuration values from YAML
    """
    for key in ("app_name", "version", "debug", "permit_allow_moderator"):
        if key in yaml_config:
            setattr(config, key, yaml_config[key])

    if "channels" in yaml_config:
        config.channels = [str(c) for c in yaml_config["channels"] or []]

    if "permit_timeout" in yaml_config:
        try:
            config.permit_timeout = parse_duration(yaml_config["permit_timeout"])
        except ValueError as e:
            raise ConfigError(f"Invalid permit_timeout: {e}")

    if "variables" in yaml_config:
        config.variables = dict(yaml_config["variables"] or {})

    if "rules" in yaml_config:
        config.rules = yaml_config["rules"] or []

    for section in ("platform", "storage", "web"):
        if section not in yaml_config:
            continue
        section_obj = getattr(config, section)
        for key, value in (yaml_config[section] or {}).items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)


def _apply_env_overrides(config: Config) -> None:
    """
    Apply environment variable overrides to Config object.

    Environment variables follow the pattern: CHAT_BOT_SECTION_KEY
    For example: CHAT_BOT_PLATFORM_TOKEN, CHAT_BOT_WEB_PORT

    Args:
        config: Config object to update
    """
    env_mappings = {
        # Platform settings
        "CHAT_BOT_PLATFORM_CLIENT_ID": ("platform", "client_id"),
        "CHAT_BOT_PLATFORM_TOKEN": ("platform", "token"),
        "CHAT_BOT_PLATFORM_API_BASE": ("platform", "api_base"),
        "CHAT_BOT_PLATFORM_TIMEOUT": ("platform", "timeout", float),
        # Legacy token env var
        "TWITCH_TOKEN": ("platform", "token"),

        # Storage settings
        "CHAT_BOT_STORAGE_TIMER_BACKEND": ("storage", "timer_backend"),
        "CHAT_BOT_STORAGE_DATABASE_PATH": ("storage", "database_path"),

        # Web settings
        "CHAT_BOT_WEB_ENABLED": ("web", "enabled", bool),
        "CHAT_BOT_WEB_HOST": ("web", "host"),
        "CHAT_BOT_WEB_PORT": ("web", "port", int),
        "CHAT_BOT_WEB_DEBUG": ("web", "debug", bool),
    }

    for env_var, mapping in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            section = mapping[0]
            key = mapping[1]
            converter = mapping[2] if len(mapping) > 2 else str

            section_obj = getattr(config, section)

            if converter == bool:
                converted = value.lower() in ("true", "1", "yes", "on")
            else:
                try:
                    converted = converter(value)
                except ValueError:
                    raise ConfigError(f"Invalid value for {env_var}", {"value": value})

            setattr(section_obj, key, converted)

    permit_timeout = os.environ.get("CHAT_BOT_PERMIT_TIMEOUT")
    if permit_timeout is not None:
        try:
            config.permit_timeout = parse_duration(permit_timeout)
        except ValueError:
            raise ConfigError("Invalid value for CHAT_BOT_PERMIT_TIMEOUT", {"value": permit_timeout})


def save_config(config: Config, config_path: Optional[str] = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save
        config_path: Path to save configuration (optional)

    Raises:
        ConfigError: If configuration cannot be saved
    """
    if config_path:
        yaml_path = Path(config_path)
    elif config.config_path:
        yaml_path = Path(config.config_path)
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except IOError as e:
        raise ConfigError(f"Failed to save config file: {e}", {"path": str(yaml_path)})
