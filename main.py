#!/usr/bin/env python3
"""
Chat Rule Bot - Main Entry Point
================================

This is the main entry point for the chat rule bot. It provides a
command-line interface for validating configurations, testing rules
and running the bot.

Usage:
    python main.py --validate-config  # Check the configuration
    python main.py --actor-docs       # Show available actions
    python main.py --test "!ping"     # Test which rules match
    python main.py --web              # Start the web API
    python main.py --stdin            # Process chat lines from stdin
    python main.py --help             # Show help
"""

import sys
import argparse
import json
import signal
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import load_config, Config
from core.exceptions import BotError
from core.logging import setup_logging, get_logger
from core.message import ChatMessage, LogConnection, MessageParseError

logger = get_logger("main")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Chat Rule Bot - Rule driven chat bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --validate-config             Validate the configuration
  python main.py --test "!ping" --channel test Test rule matching
  python main.py --test "!ping" --execute      Execute matching rules
  python main.py --web --port 9000             Start web API on port 9000
  python main.py --stdin < chat.log            Replay chat lines
        """
    )

    # Mode selection (mutually exclusive)
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate configuration and rules, then exit"
    )
    mode_group.add_argument(
        "--actor-docs",
        action="store_true",
        help="Print documentation of all actions as JSON"
    )
    mode_group.add_argument(
        "--test",
        type=str,
        metavar="MESSAGE",
        help="Test which rules match a chat message"
    )
    mode_group.add_argument(
        "--web",
        action="store_true",
        help="Start web API server"
    )
    mode_group.add_argument(
        "--stdin",
        action="store_true",
        help="Process raw chat lines read from stdin"
    )

    # Optional arguments
    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--channel",
        type=str,
        default="#test",
        help="Channel for --test (default: #test)"
    )
    parser.add_argument(
        "--user",
        type=str,
        default="tester",
        help="Sender for --test (default: tester)"
    )
    parser.add_argument(
        "--badges",
        type=str,
        default="",
        help="Badges for --test, e.g. 'moderator/1,subscriber/12'"
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Execute the matching rules for --test"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for web API (default: from config)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for web API (default: from config)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    return parser.parse_args(argv)


def run_validate_config(config: Config) -> int:
    """Validate configuration and rules."""
    from services.bot import ChatBot

    bot = ChatBot(config)
    try:
        count = bot.load_rules()
    finally:
        bot.close()

    print(f"✓ Configuration valid: {count} rule(s)")
    return 0


def run_actor_docs(config: Config) -> int:
    """Print action documentation."""
    from services.bot import ChatBot

    bot = ChatBot(config)
    try:
        docs = [doc.to_dict() for doc in bot.registry.documentation()]
    finally:
        bot.close()

    print(json.dumps(docs, indent=2, sort_keys=True))
    return 0


def run_test_message(config: Config, args: argparse.Namespace) -> int:
    """Test message handling."""
    from services.bot import ChatBot

    print(f"\nTest Message: {args.test}")
    print(f"Channel: {args.channel}  User: {args.user}  Badges: {args.badges or '-'}")
    print("-" * 50)

    bot = ChatBot(config)
    try:
        bot.load_rules()
        result = bot.test_message(
            args.test,
            channel=args.channel,
            user=args.user,
            badges=args.badges,
            execute=args.execute,
        )
    finally:
        bot.close()

    if not result:
        print("No rule matches")
        return 0

    if args.execute:
        for execution in result:
            state = "error: " + execution.error if execution.error else ("stopped" if execution.stopped else "completed")
            print(f"  {execution.rule_id}: {execution.actions_run} action(s), {state}")
    else:
        for rule in result:
            print(f"  {rule.matcher_id()}  {rule.description}")

    return 0


def run_web_ui(config: Config, host: str, port: int, debug: bool) -> int:
    """Run the web API."""
    from ui.web.app import run_app

    print(f"\nStarting web API at http://{host}:{port}")
    run_app(host=host, port=port, debug=debug, config=config)
    return 0


def run_stdin(config: Config) -> int:
    """Process raw chat lines from stdin until EOF."""
    from services.bot import ChatBot

    bot = ChatBot(config)
    bot.load_rules()
    connection = LogConnection()

    def reload(signum, frame):
        try:
            bot.reload()
        except BotError as e:
            logger.error("Reloading configuration failed", extra={"error": str(e)})

    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, reload)

    threads = []
    try:
        for line in sys.stdin:
            line = line.strip()
            if not line:
                continue

            try:
                message = ChatMessage.parse(line)
            except MessageParseError as e:
                logger.warning("Skipping unparsable line", extra={"error": str(e)})
                continue

            threads.append(bot.chat_handler.dispatch(connection, message))

        for thread in threads:
            thread.join()
    finally:
        bot.close()

    return 0


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)

        if args.debug:
            config.debug = True

        # Setup logging
        setup_logging(
            log_dir=config.log_dir,
            log_level="DEBUG" if config.debug else "INFO",
            console_output=True
        )

        # Route to appropriate mode
        if args.validate_config:
            return run_validate_config(config)
        elif args.actor_docs:
            return run_actor_docs(config)
        elif args.test is not None:
            return run_test_message(config, args)
        elif args.web:
            return run_web_ui(
                config,
                args.host or config.web.host,
                args.port or config.web.port,
                config.debug or config.web.debug
            )
        elif args.stdin:
            return run_stdin(config)

        print("No mode specified. Use --validate-config, --test, --web, --stdin or --help")
        return 0

    except BotError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
