# redis_policy_watcher/async_watcher.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Asyncio counterpart of the policy watcher.

Use this in async services (workers, API servers). The subscription loop
runs as a single asyncio task on the caller's event loop.

Usage:
    watcher = await AsyncWatcher.create("127.0.0.1:6379", channel("/yourchan"))
    watcher.set_update_callback(on_update)
    await watcher.update()
    await watcher.close()
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from redis.exceptions import RedisError

from .connection import dial_async
from .enums import WatcherState
from .exceptions import PublishError, SubscriptionError
from .options import WatcherOption, WatcherOptions, resolve_options
from .watcher import UPDATE_MESSAGE, _decode

logger = logging.getLogger(__name__)

AsyncUpdateCallback = Callable[[str], Union[Any, Awaitable[Any]]]


class AsyncWatcher:
    """Async Redis pub/sub watcher for policy change notifications.

    Construct with ``await AsyncWatcher.create(...)``; the constructor
    itself does no I/O.

    Attributes:
        options: Resolved WatcherOptions.
        state: Current state of the subscription loop.
        last_error: Most recent subscription failure, if any.
    """

    def __init__(self, client: Any, options: WatcherOptions):
        self.options = options
        self.state = WatcherState.IDLE
        self.last_error: Optional[SubscriptionError] = None
        self.failures = 0
        self._client = client
        self._callback: Optional[AsyncUpdateCallback] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    async def create(cls, address: str = "", *setters: WatcherOption) -> "AsyncWatcher":
        """Dial (or adopt a supplied client) and start the subscription task.

        Raises:
            WatcherConnectionError: The broker could not be dialed.
            AuthError: The broker rejected the password.
        """
        options = resolve_options(*setters)
        if options.connection is not None:
            client = options.connection
        else:
            client = await dial_async(address, options)

        watcher = cls(client, options)
        watcher._task = asyncio.create_task(
            watcher._run(),
            name=f"policy-watcher:{options.channel}",
        )
        logger.info(f"Watching channel '{options.channel}' for policy updates")
        return watcher

    def set_update_callback(self, callback: AsyncUpdateCallback) -> None:
        """Set the callback. Coroutine functions are awaited on delivery."""
        self._callback = callback

    async def update(self) -> int:
        """Publish a policy-updated notification on the channel.

        Raises:
            PublishError: The watcher is closed or the publish failed.
        """
        if self._closed:
            raise PublishError("Cannot publish update: watcher is closed")
        try:
            receivers = await self._client.publish(self.options.channel, UPDATE_MESSAGE)
        except RedisError as e:
            raise PublishError(f"Failed to publish update on '{self.options.channel}': {e}") from e
        logger.debug(f"Published update on '{self.options.channel}' to {receivers} subscribers")
        return receivers

    async def close(self) -> None:
        """Cancel the subscription task and close the connection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        logger.info(f"Closing watcher on '{self.options.channel}'")

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        elif self._task and not self._task.cancelled() and self._task.exception() is not None:
            logger.error(f"Subscription task for '{self.options.channel}' ended with: {self._task.exception()}")
        self.state = WatcherState.STOPPED

        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis connection: {e}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def healthy(self) -> bool:
        return not self._closed and self.state == WatcherState.RECEIVING

    async def __aenter__(self) -> "AsyncWatcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _run(self) -> None:
        while not self._closed:
            self.state = WatcherState.SUBSCRIBING
            try:
                await self._subscribe()
            except SubscriptionError as e:
                self.failures += 1
                self.last_error = e
                logger.error(f"Failure from Redis subscription: {e}")
                if self.options.retry.exhausted(self.failures):
                    self.state = WatcherState.FAILED
                    logger.error(
                        f"Giving up on '{self.options.channel}' after {self.failures} consecutive failures"
                    )
                    return
                self.state = WatcherState.IDLE
                await asyncio.sleep(self.options.retry.delay_for(self.failures))
                continue
            self.state = WatcherState.IDLE

    async def _subscribe(self) -> None:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(self.options.channel)
            self.state = WatcherState.RECEIVING
            self.failures = 0
            await self._receive(pubsub)
        except RedisError as e:
            raise SubscriptionError(
                f"Redis subscription on '{self.options.channel}' failed: {e}"
            ) from e
        except Exception as e:
            logger.exception(f"Unexpected error in subscription loop for '{self.options.channel}'")
            raise SubscriptionError(
                f"Subscription loop on '{self.options.channel}' failed unexpectedly: {e}"
            ) from e
        finally:
            await self._release(pubsub)

    async def _receive(self, pubsub: Any) -> None:
        while not self._closed:
            message = await pubsub.get_message(timeout=self.options.poll_interval)
            if message is None:
                continue

            kind = _decode(message["type"])
            if kind == "message":
                if _decode(message["channel"]) == self.options.channel:
                    await self._dispatch(_decode(message["data"]))
            elif kind == "unsubscribe" and message["data"] == 0:
                logger.info(f"No channels left subscribed, re-subscribing to '{self.options.channel}'")
                return

    async def _dispatch(self, payload: str) -> None:
        callback = self._callback
        if callback is None:
            logger.debug(f"Discarding notification on '{self.options.channel}': no callback set")
            return
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Update callback failed for notification on '{self.options.channel}'")

    async def _release(self, pubsub: Any) -> None:
        try:
            await pubsub.unsubscribe()
        except RedisError as e:
            logger.debug(f"Ignoring unsubscribe failure on '{self.options.channel}': {e}")
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.debug(f"Ignoring pub/sub close failure on '{self.options.channel}': {e}")
