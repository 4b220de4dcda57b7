# redis_policy_watcher
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Redis pub/sub watcher for distributed policy enforcers.

When one enforcer instance changes the shared policy it calls
``update()``; every instance subscribed to the same channel receives the
notification and runs its update callback, typically reloading policy
from the authoritative store.

Usage:
    from redis_policy_watcher import new_watcher, password, channel

    watcher = new_watcher("127.0.0.1:6379", password("pass"), channel("/yourchan"))
    watcher.set_update_callback(lambda msg: enforcer.load_policy())

    # Async services
    from redis_policy_watcher import AsyncWatcher
    watcher = await AsyncWatcher.create("127.0.0.1:6379")
"""

from .async_watcher import AsyncWatcher
from .enums import WatcherState
from .exceptions import (
    AuthError,
    PublishError,
    SubscriptionError,
    WatcherConnectionError,
    WatcherError,
)
from .options import (
    WatcherOption,
    WatcherOptions,
    channel,
    options_from_env,
    password,
    poll_interval,
    protocol,
    with_connection,
    with_retry,
)
from .retry import RetryPolicy
from .watcher import UPDATE_MESSAGE, Watcher, new_watcher

__all__ = [
    # Watchers
    "Watcher",
    "AsyncWatcher",
    "new_watcher",
    "UPDATE_MESSAGE",
    "WatcherState",
    # Options
    "WatcherOptions",
    "WatcherOption",
    "RetryPolicy",
    "channel",
    "protocol",
    "password",
    "with_connection",
    "with_retry",
    "poll_interval",
    "options_from_env",
    # Errors
    "WatcherError",
    "WatcherConnectionError",
    "AuthError",
    "PublishError",
    "SubscriptionError",
]
