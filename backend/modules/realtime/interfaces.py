"""
Realtime module interfaces.

The registry depends on IChangeFeedTransport, not on the Supabase
implementation, so tests can use fake transports that emit crafted events
synchronously.
"""

from typing import Any, Protocol, runtime_checkable

from shared.exceptions import TransportError

from .models import ChangeEvent, SubscriptionKey


@runtime_checkable
class IChangeFeedSink(Protocol):
    """Receiver of everything a single upstream feed delivers."""

    def on_event(self, event: ChangeEvent) -> None:
        ...

    def on_failure(self, error: TransportError) -> None:
        ...


@runtime_checkable
class IChangeFeedTransport(Protocol):
    """Opens and closes streaming subscriptions to table changes."""

    async def open(self, key: SubscriptionKey, sink: IChangeFeedSink) -> Any:
        """
        Open an upstream feed and return its handle.

        Returns only once the upstream has acknowledged the subscription;
        events are delivered to ``sink`` from then on, in upstream order.

        Raises:
            TransportError: If the feed cannot be opened
        """
        ...

    async def close(self, handle: Any) -> None:
        """Close a feed previously returned by open()."""
        ...
