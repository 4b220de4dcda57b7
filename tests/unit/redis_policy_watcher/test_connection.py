# tests/unit/redis_policy_watcher/test_connection.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""
Unit tests for dialing the broker and construction-time failures.
"""

import threading
from unittest.mock import AsyncMock, Mock, patch

import pytest
from redis.exceptions import AuthenticationError, ConnectionError as RedisConnectionError

from redis_policy_watcher import (
    AsyncWatcher,
    AuthError,
    Watcher,
    WatcherConnectionError,
    password,
    protocol,
)
from redis_policy_watcher.connection import dial, parse_address
from redis_policy_watcher.options import resolve_options


def _watcher_threads() -> list[str]:
    return [t.name for t in threading.enumerate() if t.name.startswith("policy-watcher:")]


class TestParseAddress:
    """Tests for host:port parsing."""

    def test_host_and_port(self):
        assert parse_address("127.0.0.1:6379") == ("127.0.0.1", 6379)

    def test_empty_host_means_localhost(self):
        assert parse_address(":6380") == ("localhost", 6380)

    def test_bracketed_ipv6_host(self):
        """Brackets around an IPv6 literal are not part of the host."""
        assert parse_address("[::1]:6379") == ("::1", 6379)

    @pytest.mark.parametrize("address", ["", "localhost", "localhost:abc", "localhost:0", "localhost:70000"])
    def test_invalid(self, address):
        with pytest.raises(WatcherConnectionError):
            parse_address(address)

    def test_connection_error_is_builtin_connection_error(self):
        """Callers catching ConnectionError also catch dial failures."""
        with pytest.raises(ConnectionError):
            parse_address("nope")


class TestDial:
    """Tests for dial() with a mocked Redis client."""

    def test_dial_passes_password_and_pings(self):
        client = Mock()
        with patch("redis_policy_watcher.connection.redis.Redis", return_value=client) as redis_cls:
            result = dial("10.0.0.1:6379", resolve_options(password("secret")))

        assert result is client
        kwargs = redis_cls.call_args.kwargs
        assert kwargs["host"] == "10.0.0.1"
        assert kwargs["port"] == 6379
        assert kwargs["password"] == "secret"
        client.ping.assert_called_once()

    def test_dial_unix_socket(self):
        client = Mock()
        with patch("redis_policy_watcher.connection.redis.Redis", return_value=client) as redis_cls:
            dial("/var/run/redis.sock", resolve_options(protocol("unix")))

        kwargs = redis_cls.call_args.kwargs
        assert kwargs["unix_socket_path"] == "/var/run/redis.sock"
        assert "host" not in kwargs

    def test_unsupported_protocol(self):
        with pytest.raises(WatcherConnectionError, match="Unsupported protocol"):
            dial("localhost:6379", resolve_options(protocol("udp")))

    def test_unreachable_broker(self):
        client = Mock()
        client.ping.side_effect = RedisConnectionError("Connection refused")
        with patch("redis_policy_watcher.connection.redis.Redis", return_value=client):
            with pytest.raises(WatcherConnectionError, match="Connection refused"):
                dial("localhost:1", resolve_options())
        client.close.assert_called_once()

    def test_rejected_password_closes_client(self):
        client = Mock()
        client.ping.side_effect = AuthenticationError("invalid password")
        with patch("redis_policy_watcher.connection.redis.Redis", return_value=client):
            with pytest.raises(AuthError):
                dial("localhost:6379", resolve_options(password("wrong")))
        client.close.assert_called_once()


class TestWatcherConstructionFailures:
    """Construction failures surface synchronously and start no loop."""

    def test_invalid_address_starts_no_loop(self):
        before = _watcher_threads()
        with pytest.raises(WatcherConnectionError):
            Watcher("not-an-address")
        assert _watcher_threads() == before

    def test_unreachable_broker_starts_no_loop(self):
        client = Mock()
        client.ping.side_effect = RedisConnectionError("Connection refused")
        before = _watcher_threads()
        with patch("redis_policy_watcher.connection.redis.Redis", return_value=client):
            with pytest.raises(WatcherConnectionError):
                Watcher("localhost:1")
        assert _watcher_threads() == before

    def test_wrong_password_leaves_no_connection(self):
        client = Mock()
        client.ping.side_effect = AuthenticationError("WRONGPASS invalid username-password pair")
        with patch("redis_policy_watcher.connection.redis.Redis", return_value=client):
            with pytest.raises(AuthError):
                Watcher("localhost:6379", password("wrong"))
        client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_wrong_password_leaves_no_connection(self):
        client = Mock()
        client.ping = AsyncMock(side_effect=AuthenticationError("invalid password"))
        client.aclose = AsyncMock()
        with patch("redis_policy_watcher.connection.aioredis.Redis", return_value=client):
            with pytest.raises(AuthError):
                await AsyncWatcher.create("localhost:6379", password("wrong"))
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_async_unreachable_broker(self):
        client = Mock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        client.aclose = AsyncMock()
        with patch("redis_policy_watcher.connection.aioredis.Redis", return_value=client):
            with pytest.raises(WatcherConnectionError):
                await AsyncWatcher.create("localhost:1")
        client.aclose.assert_awaited_once()
