"""
Realtime channel multiplexer.

Keeps exactly one upstream change feed per subscription key and fans the
feed's events out to every subscriber registered on that key.

Per key the state machine is CLOSED -> OPEN (first subscribe) -> OPEN
(more subscribes/unsubscribes) -> CLOSED (last unsubscribe, or a transport
failure). Bookkeeping is mutated synchronously on the event loop, so a
subscribe and an unsubscribe on the same key can never interleave and the
feed is closed exactly once. A subscribe that arrives while the key's open
is still pending takes that feed back, and a new open waits for the
previous close on the key to finish, so a key never has two live feeds.
"""

import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Coroutine, Iterable

from shared.exceptions import TransportError

from .exceptions import FeedOpenError
from .interfaces import IChangeFeedTransport
from .models import (
    ChangeEvent,
    ChannelHandle,
    RealtimeCallbacks,
    SubscriptionKey,
)

logger = logging.getLogger(__name__)


class _Feed:
    """One upstream feed and the callback sets attached to it."""

    def __init__(self, registry: "ChannelRegistry", key: SubscriptionKey):
        self.registry = registry
        self.key = key
        self.name = key.name
        # Insertion order is registration order
        self.subscribers: dict[int, RealtimeCallbacks] = {}
        self.handle: Any = None
        self.closed = False

    def on_event(self, event: ChangeEvent) -> None:
        self.registry._dispatch(self, event)

    def on_failure(self, error: TransportError) -> None:
        self.registry._fail(self, error)


class ChannelRegistry:
    """
    Deduplicates realtime subscriptions by key.

    subscribe() returns its handle immediately; opening the upstream feed is
    scheduled on the running event loop and event delivery starts once the
    transport acknowledges it. Use drain() to wait for pending open/close
    work, e.g. on shutdown.
    """

    def __init__(self, transport: IChangeFeedTransport):
        self._transport = transport
        self._feeds: dict[str, _Feed] = {}
        # Feeds whose transport.open() has not returned yet, by key name
        self._opening: dict[str, _Feed] = {}
        # Pending upstream closes, by key name
        self._closing: dict[str, asyncio.Task] = {}
        self._subscriber_ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, key: SubscriptionKey, callbacks: RealtimeCallbacks) -> ChannelHandle:
        """
        Register a callback set for a key.

        Opens the upstream feed if this is the first subscriber for the key,
        otherwise attaches to the existing feed. Must be called from a
        running event loop.
        """
        feed = self._feeds.get(key.name)
        if feed is None and key.name in self._opening:
            # Left while its open was pending; take it back instead of opening again
            feed = self._opening[key.name]
            feed.closed = False
            self._feeds[key.name] = feed
            logger.debug("Reattaching to pending change feed %s", key.name)
        elif feed is None:
            feed = _Feed(self, key)
            self._opening[key.name] = feed
            self._spawn(self._open_feed(feed))
            self._feeds[key.name] = feed
            logger.debug("Opening change feed %s", key.name)
        else:
            logger.debug("Attaching to existing change feed %s", key.name)

        subscriber_id = next(self._subscriber_ids)
        feed.subscribers[subscriber_id] = callbacks
        return ChannelHandle(key=key.name, subscriber_id=subscriber_id)

    def subscribe_many(
        self,
        subscriptions: Iterable[tuple[SubscriptionKey, RealtimeCallbacks]],
    ) -> list[ChannelHandle]:
        """Subscribe several (key, callbacks) pairs at once."""
        return [self.subscribe(key, callbacks) for key, callbacks in subscriptions]

    def unsubscribe(self, handle: ChannelHandle) -> None:
        """
        Remove one callback set.

        Closes the upstream feed when its last subscriber leaves. Calling it
        again with the same handle is a no-op.
        """
        feed = self._feeds.get(handle.key)
        if feed is None or handle.subscriber_id not in feed.subscribers:
            return

        del feed.subscribers[handle.subscriber_id]
        if not feed.subscribers:
            self._close_feed(feed)

    def unsubscribe_all(self) -> None:
        """Close every upstream feed and forget all subscribers."""
        for feed in list(self._feeds.values()):
            feed.subscribers.clear()
            self._close_feed(feed)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def active_keys(self) -> set[str]:
        """Canonical names of the keys with an open (or opening) feed."""
        return set(self._feeds)

    def subscriber_count(self, key: SubscriptionKey) -> int:
        feed = self._feeds.get(key.name)
        return len(feed.subscribers) if feed else 0

    async def drain(self) -> None:
        """Wait until all scheduled open and close work has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # -------------------------------------------------------------------------
    # Feed lifecycle
    # -------------------------------------------------------------------------

    async def _open_feed(self, feed: _Feed) -> None:
        closing = self._closing.get(feed.name)
        if closing is not None:
            # The previous feed on this key must be gone before a new one opens
            await asyncio.wait([closing])

        try:
            handle = await self._transport.open(feed.key, feed)
        except TransportError as e:
            logger.warning("Failed to open change feed %s: %s", feed.name, e)
            self._fail(feed, e)
            return
        except Exception as e:
            logger.exception("Unexpected error opening change feed %s", feed.name)
            self._fail(feed, FeedOpenError(feed.name, str(e)))
            return
        finally:
            if self._opening.get(feed.name) is feed:
                del self._opening[feed.name]

        if feed.closed:
            # Last subscriber left (or the feed failed) while opening
            self._schedule_close(feed.name, handle)
            return

        feed.handle = handle
        logger.info("Subscribed to change feed %s", feed.name)

    def _close_feed(self, feed: _Feed) -> None:
        if feed.closed:
            return
        feed.closed = True
        if self._feeds.get(feed.name) is feed:
            del self._feeds[feed.name]
        if feed.handle is not None:
            self._schedule_close(feed.name, feed.handle)

    def _schedule_close(self, name: str, handle: Any) -> None:
        task = self._spawn(self._close_handle(name, handle))
        self._closing[name] = task

        def forget(done: asyncio.Task) -> None:
            if self._closing.get(name) is done:
                del self._closing[name]

        task.add_done_callback(forget)

    async def _close_handle(self, name: str, handle: Any) -> None:
        try:
            await self._transport.close(handle)
        except TransportError as e:
            logger.warning("Failed to close change feed %s: %s", name, e)
            return
        logger.info("Unsubscribed from change feed %s", name)

    def _fail(self, feed: _Feed, error: TransportError) -> None:
        # A failed feed is never taken back by a later subscribe
        if self._opening.get(feed.name) is feed:
            del self._opening[feed.name]
        if feed.closed:
            return
        subscribers = list(feed.subscribers.values())
        self._close_feed(feed)
        for callbacks in subscribers:
            self._notify_error(callbacks, error)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _dispatch(self, feed: _Feed, event: ChangeEvent) -> None:
        if feed.closed:
            return

        for subscriber_id, callbacks in list(feed.subscribers.items()):
            callback = callbacks.for_kind(event.kind)
            if callback is None:
                continue
            try:
                result = callback(event.record)
            except Exception as e:
                logger.exception(
                    "Subscriber %s failed handling %s on %s",
                    subscriber_id,
                    event.kind.value,
                    feed.name,
                )
                self._notify_error(callbacks, e)
                continue

            if inspect.isawaitable(result):
                self._spawn(self._await_callback(callbacks, result))

    async def _await_callback(self, callbacks: RealtimeCallbacks, result: Awaitable[Any]) -> None:
        try:
            await result
        except Exception as e:
            logger.exception("Async subscriber callback failed")
            self._notify_error(callbacks, e)

    def _notify_error(self, callbacks: RealtimeCallbacks, error: Exception) -> None:
        if callbacks.on_error is None:
            return
        try:
            callbacks.on_error(error)
        except Exception:
            logger.exception("Subscriber error callback failed")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
