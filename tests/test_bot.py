"""
Test Chat Bot Module
===================

Integration tests for the wired bot and the command line.
"""

import json
import sys
import pytest
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import Config, StorageConfig, load_config
from core.exceptions import ConfigError
from core.message import ChatConnection, ChatMessage
from core.timers import SQLiteTimerStore, TimerStore
from services.bot import ChatBot
import main


class RecordingConnection(ChatConnection):
    def __init__(self):
        self.sent = []

    def send_message(self, message):
        self.sent.append(message)


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    monkeypatch.setenv("CHAT_BOT_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("CHAT_BOT_DATA_DIR", str(tmp_path / "data"))


CONFIG_YAML = """
variables:
  greeting: Hello
rules:
  - uuid: greet
    match_message: '^!hi$'
    actions:
      - type: respond
        attributes:
          message: '{{ greeting }} {{ username }}'
"""


class TestChatBot:
    """Tests for the composition root."""

    def test_invalid_action_attributes_rejected(self):
        bot = ChatBot(Config(rules=[{"actions": [{"type": "respond", "attributes": {}}]}]), timer_store=TimerStore())
        with pytest.raises(ConfigError):
            bot.load_rules()
        bot.close()

    def test_sqlite_backend(self, tmp_path):
        config = Config(storage=StorageConfig(timer_backend="sqlite", database_path=str(tmp_path / "t.db")))
        bot = ChatBot(config)
        assert isinstance(bot.timer_store, SQLiteTimerStore)
        bot.close()

    def test_chat_line_to_response(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        bot = ChatBot(load_config(str(path)), timer_store=TimerStore())
        bot.load_rules()
        connection = RecordingConnection()

        bot.chat_handler.handle(connection, ChatMessage.parse(":alice!alice@a PRIVMSG #test :!hi"))

        assert connection.sent[0].params == ["#test", "Hello alice"]
        bot.close()

    def test_script_returned_actions_run_through_dispatcher(self, tmp_path):
        script = tmp_path / "script.py"
        script.write_text(
            "import json\n"
            "print(json.dumps([{'type': 'respond', 'attributes': {'message': 'scripted'}}]))\n"
        )
        bot = ChatBot(Config(rules=[{
            "match_message": "^!script$",
            "actions": [{"type": "script", "attributes": {"command": [sys.executable, str(script)]}}],
        }]), timer_store=TimerStore())
        bot.load_rules()
        connection = RecordingConnection()

        bot.dispatcher.handle_message(connection, ChatMessage.privmsg("#test", "!script", user="alice"))

        assert connection.sent[0].trailing == "scripted"
        bot.close()

    def test_reload(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        bot = ChatBot(load_config(str(path)), timer_store=TimerStore())
        bot.load_rules()

        path.write_text(CONFIG_YAML + "  - uuid: second\n    match_message: '^!bye$'\n")
        assert bot.reload() == 2

        path.write_text("rules:\n  - match_message: '('\n")
        with pytest.raises(ConfigError):
            bot.reload()
        assert len(bot.engine) == 2
        bot.close()

    def test_test_message(self):
        bot = ChatBot(Config(rules=[{"uuid": "mods", "enable_on": ["moderator"]}]), timer_store=TimerStore())
        bot.load_rules()

        assert bot.test_message("hi", badges="broadcaster/1")[0].matcher_id() == "mods"
        assert bot.test_message("hi") == []
        bot.close()


class TestCommandLine:
    """Tests for main.py modes."""

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)

    def test_validate_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        assert main.main(["--config", str(path), "--validate-config"]) == 0
        assert "1 rule(s)" in capsys.readouterr().out

    def test_validate_config_invalid(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("rules:\n  - match_message: '('\n")

        assert main.main(["--config", str(path), "--validate-config"]) == 1

    def test_actor_docs(self, tmp_path, capsys):
        assert main.main(["--config", str(tmp_path / "missing.yaml"), "--actor-docs"]) == 0
        docs = json.loads(capsys.readouterr().out)
        assert {d["type"] for d in docs} >= {"respond", "delay", "stopexec"}

    def test_test_message(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        assert main.main(["--config", str(path), "--test", "!hi"]) == 0
        assert "greet" in capsys.readouterr().out
