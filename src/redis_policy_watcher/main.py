# redis_policy_watcher/main.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Command-line entry point for publishing and listening to policy updates."""

import argparse
import logging
import sys
import threading
from typing import Optional

from .exceptions import WatcherError
from .options import WatcherOption, channel, options_from_env, password, protocol
from .watcher import Watcher

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Publish or listen for policy update notifications over Redis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Tell every enforcer on the default channel to reload
  python -m redis_policy_watcher publish

  # Log notifications on a custom channel
  python -m redis_policy_watcher listen --channel /yourchan --addr redis.example.com:6379

Settings not given as flags are read from REDIS_ADDR, REDIS_PROTOCOL,
REDIS_PASSWORD and WATCHER_CHANNEL (a .env file is honored).
        """,
    )
    parser.add_argument(
        "command",
        choices=["publish", "listen"],
        help="publish one update notification, or listen for notifications",
    )
    parser.add_argument("--addr", default=None, help="Broker address as host:port (or socket path)")
    parser.add_argument("--channel", default=None, help="Notification channel (default: /casbin)")
    parser.add_argument("--password", default=None, help="Broker password")
    parser.add_argument(
        "--protocol",
        default=None,
        choices=["tcp", "unix"],
        help="Network protocol (default: tcp)",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure logging with the specified level.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_watcher_args(args: argparse.Namespace) -> tuple[str, list[WatcherOption]]:
    """Combine environment settings with command-line overrides.

    Flags are appended after the environment setters, so they win.
    """
    address, setters = options_from_env(args.env_file)
    if args.addr is not None:
        address = args.addr
    if args.channel is not None:
        setters.append(channel(args.channel))
    if args.protocol is not None:
        setters.append(protocol(args.protocol))
    if args.password is not None:
        setters.append(password(args.password))
    return address, setters


def run_publish(address: str, setters: list[WatcherOption]) -> int:
    with Watcher(address, *setters) as watcher:
        receivers = watcher.update()
        logger.info(f"Update published on '{watcher.options.channel}' to {receivers} subscribers")
        return receivers


def run_listen(address: str, setters: list[WatcherOption], stop: Optional[threading.Event] = None) -> None:
    """Log every notification until interrupted (or ``stop`` is set)."""
    stop = stop or threading.Event()
    with Watcher(address, *setters) as watcher:
        watcher.set_update_callback(
            lambda msg: logger.info(f"Policy update on '{watcher.options.channel}': {msg}")
        )
        while not stop.wait(1.0):
            pass


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the watcher CLI."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    address, setters = build_watcher_args(args)
    try:
        if args.command == "publish":
            run_publish(address, setters)
        else:
            run_listen(address, setters)
    except KeyboardInterrupt:
        logger.info("Watcher stopped by user (KeyboardInterrupt)")
    except WatcherError as e:
        logger.error(f"Watcher error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
