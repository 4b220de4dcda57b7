# tests/unit/redis_policy_watcher/conftest.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Shared fixtures for watcher tests."""

import time

import fakeredis
import pytest

from redis_policy_watcher import RetryPolicy, poll_interval, with_retry


@pytest.fixture
def fake_server():
    """A fake Redis server shared by every client created in a test."""
    return fakeredis.FakeServer()


@pytest.fixture
def fast_setters():
    """Setters that keep receive polls and retry delays short."""
    return [
        poll_interval(0.05),
        with_retry(RetryPolicy(initial_delay=0.01, max_delay=0.05)),
    ]


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
