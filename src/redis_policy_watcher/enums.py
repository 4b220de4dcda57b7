# redis_policy_watcher/enums.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Enumeration types for watcher lifecycle."""

from enum import Enum


class WatcherState(str, Enum):
    """State of a watcher's subscription loop.

    Attributes:
        IDLE: Between subscription attempts (including backoff waits).
        SUBSCRIBING: Issuing SUBSCRIBE for the configured channel.
        RECEIVING: Subscribed and waiting for notifications.
        STOPPED: Loop exited after close().
        FAILED: Loop gave up after exhausting its retry policy.
    """

    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    RECEIVING = "receiving"
    STOPPED = "stopped"
    FAILED = "failed"
