# redis_policy_watcher/options.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Watcher configuration and option setters.

Options are resolved by applying setter functions, in order, over the
defaults:

    watcher = new_watcher(
        "127.0.0.1:6379",
        password("pass"),
        channel("/yourchan"),
    )

A pre-established client can be handed over instead of dialing:

    client = redis.Redis(host="localhost", port=6379)
    watcher = new_watcher("", with_connection(client))
"""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from .retry import RetryPolicy

DEFAULT_CHANNEL = "/casbin"
DEFAULT_PROTOCOL = "tcp"
DEFAULT_ADDRESS = "localhost:6379"


@dataclass
class WatcherOptions:
    """Resolved configuration for a watcher.

    Attributes:
        channel: Pub/sub channel carrying update notifications.
        protocol: Network protocol used to dial, "tcp" or "unix".
        password: Shared credential sent as AUTH when dialing.
        connection: Pre-established Redis client. When set, no dialing or
            authentication is performed and the watcher takes ownership.
        retry: Backoff applied between failed subscription attempts.
        poll_interval: Seconds a receive blocks before re-checking for shutdown.
        socket_timeout: Timeout in seconds for dialing and commands.
    """

    channel: str = DEFAULT_CHANNEL
    protocol: str = DEFAULT_PROTOCOL
    password: Optional[str] = None
    connection: Optional[Any] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    poll_interval: float = 0.5
    socket_timeout: Optional[float] = 5.0


WatcherOption = Callable[[WatcherOptions], None]


def resolve_options(*setters: WatcherOption) -> WatcherOptions:
    """Apply setters in order over the default options."""
    options = WatcherOptions()
    for setter in setters:
        setter(options)
    return options


def channel(name: str) -> WatcherOption:
    """Set the channel used for update notifications."""
    def setter(options: WatcherOptions) -> None:
        options.channel = name
    return setter


def protocol(name: str) -> WatcherOption:
    """Set the network protocol used to dial the broker."""
    def setter(options: WatcherOptions) -> None:
        options.protocol = name
    return setter


def password(secret: str) -> WatcherOption:
    """Set the password sent as AUTH right after dialing."""
    def setter(options: WatcherOptions) -> None:
        options.password = secret
    return setter


def with_connection(client: Any) -> WatcherOption:
    """Hand a pre-established Redis client over to the watcher."""
    def setter(options: WatcherOptions) -> None:
        options.connection = client
    return setter


def with_retry(policy: RetryPolicy) -> WatcherOption:
    """Set the backoff policy used between failed subscription attempts."""
    def setter(options: WatcherOptions) -> None:
        options.retry = policy
    return setter


def poll_interval(seconds: float) -> WatcherOption:
    """Set how long each receive blocks before re-checking for shutdown."""
    def setter(options: WatcherOptions) -> None:
        options.poll_interval = seconds
    return setter


def options_from_env(dotenv_path: Optional[str] = None) -> tuple[str, list[WatcherOption]]:
    """Read broker settings from the environment (and .env, if present).

    Recognized variables: REDIS_ADDR, REDIS_PROTOCOL, REDIS_PASSWORD,
    WATCHER_CHANNEL. Unset variables keep their defaults.

    Args:
        dotenv_path: Optional explicit .env file to load.

    Returns:
        Tuple of (address, setters) ready for new_watcher().
    """
    if dotenv_path is not None:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    address = os.getenv("REDIS_ADDR", DEFAULT_ADDRESS)
    setters: list[WatcherOption] = [
        channel(os.getenv("WATCHER_CHANNEL", DEFAULT_CHANNEL)),
        protocol(os.getenv("REDIS_PROTOCOL", DEFAULT_PROTOCOL)),
    ]
    secret = os.getenv("REDIS_PASSWORD")
    if secret:
        setters.append(password(secret))
    return address, setters
