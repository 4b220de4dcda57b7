# redis_policy_watcher/watcher.py
# AI-Mind (C) 2025 by Martin Bukowski is licensed under CC BY-NC-SA 4.0
"""Redis pub/sub watcher for policy change notifications.

One instance calls ``update()`` after changing the shared policy; every
instance subscribed to the same channel receives the marker and invokes
its update callback, typically reloading policy from the store.

Architecture:
    Enforcer A -> update() -> PUBLISH /casbin -> Redis
    Redis -> SUBSCRIBE /casbin -> [subscription thread] -> callback(msg)

Usage:
    watcher = new_watcher("127.0.0.1:6379", password("pass"), channel("/yourchan"))
    watcher.set_update_callback(lambda msg: enforcer.load_policy())
    ...
    watcher.update()
    watcher.close()
"""

import logging
import threading
import weakref
from typing import Any, Callable, Optional

from redis.exceptions import RedisError

from .connection import dial
from .enums import WatcherState
from .exceptions import PublishError, SubscriptionError
from .options import WatcherOption, WatcherOptions, resolve_options

logger = logging.getLogger(__name__)

UPDATE_MESSAGE = "casbin rules updated"

UpdateCallback = Callable[[str], Any]


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class _CallbackSlot:
    """Lock-guarded holder for the single update callback. Last writer wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._callback: Optional[UpdateCallback] = None

    def set(self, callback: Optional[UpdateCallback]) -> None:
        with self._lock:
            self._callback = callback

    def get(self) -> Optional[UpdateCallback]:
        with self._lock:
            return self._callback


class _SubscriptionLoop:
    """Background subscribe/receive loop.

    Must not reference the owning Watcher: its finalizer only fires once
    the watcher is unreachable, and this thread outlives it.

    States:
        IDLE -> SUBSCRIBING -> RECEIVING -> (error | unsubscribed) -> IDLE

    Failures back off according to the retry policy; a clean unsubscribe
    (subscription count dropped to zero) re-subscribes immediately.
    """

    def __init__(self, client: Any, options: WatcherOptions, callbacks: _CallbackSlot):
        self.client = client
        self.options = options
        self.callbacks = callbacks
        self.state = WatcherState.IDLE
        self.last_error: Optional[SubscriptionError] = None
        self.failures = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self.run,
            name=f"policy-watcher:{options.channel}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit and wait for the thread to finish."""
        self._stop.set()
        if timeout is None:
            timeout = max(1.0, self.options.poll_interval * 4)
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(
                    f"Subscription thread for '{self.options.channel}' did not stop within {timeout}s"
                )

    def run(self) -> None:
        logger.debug(f"Subscription loop started for '{self.options.channel}'")
        while not self._stop.is_set():
            self.state = WatcherState.SUBSCRIBING
            try:
                self._subscribe()
            except SubscriptionError as e:
                if not self._backoff(e):
                    return
                continue
            self.state = WatcherState.IDLE

        self.state = WatcherState.STOPPED
        logger.debug(f"Subscription loop stopped for '{self.options.channel}'")

    def _subscribe(self) -> None:
        """Run one SUBSCRIBING/RECEIVING cycle.

        Returns when the subscription count drops to zero or stop is
        requested.

        Raises:
            SubscriptionError: The broker session failed.
        """
        pubsub = self.client.pubsub()
        try:
            pubsub.subscribe(self.options.channel)
            self.state = WatcherState.RECEIVING
            self.failures = 0
            self._receive(pubsub)
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
            self._release(pubsub)

    def _receive(self, pubsub: Any) -> None:
        while not self._stop.is_set():
            message = pubsub.get_message(timeout=self.options.poll_interval)
            if message is None:
                continue

            kind = _decode(message["type"])
            if kind == "message":
                if _decode(message["channel"]) == self.options.channel:
                    self._dispatch(_decode(message["data"]))
            elif kind == "unsubscribe" and message["data"] == 0:
                logger.info(f"No channels left subscribed, re-subscribing to '{self.options.channel}'")
                return

    def _dispatch(self, payload: str) -> None:
        callback = self.callbacks.get()
        if callback is None:
            logger.debug(f"Discarding notification on '{self.options.channel}': no callback set")
            return
        try:
            callback(payload)
        except Exception:
            logger.exception(f"Update callback failed for notification on '{self.options.channel}'")

    def _release(self, pubsub: Any) -> None:
        """Best-effort unsubscribe and close of a pub/sub session."""
        try:
            pubsub.unsubscribe()
        except RedisError as e:
            logger.debug(f"Ignoring unsubscribe failure on '{self.options.channel}': {e}")
        try:
            pubsub.close()
        except RedisError as e:
            logger.debug(f"Ignoring pub/sub close failure on '{self.options.channel}': {e}")

    def _backoff(self, error: SubscriptionError) -> bool:
        """Record a failure and wait before the next attempt.

        Returns:
            False if the retry policy is exhausted and the loop must exit.
        """
        self.failures += 1
        self.last_error = error
        if self._stop.is_set():
            return True

        logger.error(f"Failure from Redis subscription: {error}")
        if self.options.retry.exhausted(self.failures):
            self.state = WatcherState.FAILED
            logger.error(
                f"Giving up on '{self.options.channel}' after {self.failures} consecutive failures"
            )
            return False

        self.state = WatcherState.IDLE
        delay = self.options.retry.delay_for(self.failures)
        logger.debug(f"Retrying subscription on '{self.options.channel}' in {delay:.2f}s")
        self._stop.wait(delay)
        return True


def _shutdown(loop: _SubscriptionLoop, client: Any) -> None:
    loop.stop()
    try:
        client.close()
    except RedisError as e:
        logger.warning(f"Error closing Redis connection: {e}")


class Watcher:
    """Notifies other enforcer instances of policy changes over Redis pub/sub.

    Construction dials the broker (or adopts a client supplied through
    ``with_connection``) and starts exactly one background subscription
    thread. The connection is closed by ``close()``, on leaving a ``with``
    block, or as a fallback when the watcher is garbage collected.

    Attributes:
        options: Resolved WatcherOptions.
    """

    def __init__(self, address: str = "", *setters: WatcherOption):
        """Create a watcher and start its subscription loop.

        Args:
            address: Broker target as "host:port" (socket path for the unix
                protocol). Ignored when a connection is supplied.
            *setters: Option setters applied in order over the defaults.

        Raises:
            WatcherConnectionError: The broker could not be dialed.
            AuthError: The broker rejected the password.
        """
        self.options = resolve_options(*setters)

        if self.options.connection is not None:
            self._client = self.options.connection
        else:
            self._client = dial(address, self.options)

        self._callbacks = _CallbackSlot()
        self._loop = _SubscriptionLoop(self._client, self.options, self._callbacks)
        self._finalizer = weakref.finalize(self, _shutdown, self._loop, self._client)
        self._loop.start()

        logger.info(f"Watching channel '{self.options.channel}' for policy updates")

    def set_update_callback(self, callback: UpdateCallback) -> None:
        """Set the function invoked with the payload of each notification.

        Replaces any previous callback. A delivery already in flight may
        still use the previous one.
        """
        self._callbacks.set(callback)

    def update(self) -> int:
        """Publish a policy-updated notification on the channel.

        Returns:
            Number of subscribers that received the notification,
            including this watcher's own subscription.

        Raises:
            PublishError: The watcher is closed or the publish failed.
        """
        if self.closed:
            raise PublishError("Cannot publish update: watcher is closed")
        try:
            receivers = self._client.publish(self.options.channel, UPDATE_MESSAGE)
        except RedisError as e:
            raise PublishError(f"Failed to publish update on '{self.options.channel}': {e}") from e
        logger.debug(f"Published update on '{self.options.channel}' to {receivers} subscribers")
        return receivers

    def close(self) -> None:
        """Stop the subscription loop and close the connection. Idempotent."""
        if self._finalizer.alive:
            logger.info(f"Closing watcher on '{self.options.channel}'")
        self._finalizer()

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def state(self) -> WatcherState:
        return self._loop.state

    @property
    def healthy(self) -> bool:
        """True while the loop is subscribed and receiving."""
        return not self.closed and self._loop.state == WatcherState.RECEIVING

    @property
    def last_error(self) -> Optional[SubscriptionError]:
        return self._loop.last_error

    def __enter__(self) -> "Watcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def new_watcher(address: str = "", *setters: WatcherOption) -> Watcher:
    """Create a Watcher.

    Example:
        watcher = new_watcher("127.0.0.1:6379", password("pass"), channel("/yourchan"))
    """
    return Watcher(address, *setters)
