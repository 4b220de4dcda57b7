# redis_policy_watcher/connection.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Dialing the broker.

Both the sync and async watchers dial through here so that address
parsing and error classification stay identical.
"""

import logging
from typing import Any

import redis
import redis.asyncio as aioredis
from redis.exceptions import AuthenticationError, RedisError

from .exceptions import AuthError, WatcherConnectionError
from .options import WatcherOptions

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOLS = ("tcp", "unix")


def parse_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` target.

    An empty host (``":6379"``) means localhost.

    Raises:
        WatcherConnectionError: If the address is not a valid host:port.
    """
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise WatcherConnectionError(f"Invalid broker address '{address}': expected host:port")
    try:
        port = int(port_text)
    except ValueError:
        raise WatcherConnectionError(f"Invalid port in broker address '{address}'") from None
    if not 0 < port < 65536:
        raise WatcherConnectionError(f"Port out of range in broker address '{address}'")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "localhost", port


def _client_kwargs(address: str, options: WatcherOptions) -> dict[str, Any]:
    if options.protocol not in SUPPORTED_PROTOCOLS:
        raise WatcherConnectionError(f"Unsupported protocol '{options.protocol}'")

    kwargs: dict[str, Any] = {
        "password": options.password or None,
        "socket_connect_timeout": options.socket_timeout,
        "socket_timeout": options.socket_timeout,
    }
    if options.protocol == "unix":
        if not address:
            raise WatcherConnectionError("Unix protocol requires a socket path")
        kwargs["unix_socket_path"] = address
    else:
        kwargs["host"], kwargs["port"] = parse_address(address)
    return kwargs


def dial(address: str, options: WatcherOptions) -> redis.Redis:
    """Open a Redis client and force a round trip so failures surface now.

    The password, if any, is sent as AUTH when the connection is made.

    Raises:
        AuthError: The broker rejected the credentials. The client is closed.
        WatcherConnectionError: The broker could not be reached.
    """
    client = redis.Redis(**_client_kwargs(address, options))
    try:
        client.ping()
    except AuthenticationError as e:
        client.close()
        raise AuthError(f"Authentication to {address} rejected: {e}") from e
    except RedisError as e:
        client.close()
        raise WatcherConnectionError(f"Failed to connect to {address}: {e}") from e

    logger.debug(f"Connected to broker at {address} ({options.protocol})")
    return client


async def dial_async(address: str, options: WatcherOptions) -> aioredis.Redis:
    """Async counterpart of :func:`dial`."""
    client = aioredis.Redis(**_client_kwargs(address, options))
    try:
        await client.ping()
    except AuthenticationError as e:
        await client.aclose()
        raise AuthError(f"Authentication to {address} rejected: {e}") from e
    except RedisError as e:
        await client.aclose()
        raise WatcherConnectionError(f"Failed to connect to {address}: {e}") from e

    logger.debug(f"Connected to broker at {address} ({options.protocol})")
    return client
