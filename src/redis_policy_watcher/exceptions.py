# redis_policy_watcher/exceptions.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Exceptions for the policy watcher."""


class WatcherError(Exception):
    """Base class for all watcher errors."""
    pass


class WatcherConnectionError(WatcherError, ConnectionError):
    """Raised when the broker cannot be dialed."""
    pass


class AuthError(WatcherError):
    """Raised when the broker rejects the configured password.

    The connection is closed before this is raised.
    """
    pass


class PublishError(WatcherError):
    """Raised when an update notification could not be published."""
    pass


class SubscriptionError(WatcherError):
    """Raised inside the subscription loop when the broker session fails.

    Never propagated to callers; logged and kept as the watcher's last error.
    """
    pass
