"""
Supabase realtime transport.

Opens one realtime channel per subscription key, listening to
``postgres_changes`` for the key's table and filter, and forwards each row
change to the feed's sink as a ChangeEvent.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from supabase import AsyncClient

from shared.database import get_supabase_realtime_client
from shared.exceptions import TransportError

from .exceptions import FeedClosedError, FeedOpenError
from .interfaces import IChangeFeedSink
from .models import ChangeEvent, ChangeKind, SubscriptionKey

logger = logging.getLogger(__name__)

SUBSCRIBED = "SUBSCRIBED"
FAILURE_STATES = ("CHANNEL_ERROR", "TIMED_OUT", "CLOSED")


class SupabaseChangeFeedTransport:
    """
    IChangeFeedTransport backed by Supabase realtime channels.

    open() waits for the channel's SUBSCRIBED status before returning the
    channel as the feed handle. A failure status after that point is
    reported through the sink.
    """

    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        schema: str = "public",
        ack_timeout: float = 10.0,
    ):
        self._client = client
        self._schema = schema
        self._ack_timeout = ack_timeout

    async def open(self, key: SubscriptionKey, sink: IChangeFeedSink) -> Any:
        client = await self._get_client()
        channel = client.channel(key.name)
        channel.on_postgres_changes(
            "*",
            callback=lambda payload: self._deliver(key, sink, payload),
            table=key.table,
            schema=self._schema,
            filter=key.filter_expression,
        )

        acknowledged = asyncio.get_running_loop().create_future()

        def on_status(status: Any, error: Optional[Exception] = None) -> None:
            state = _state_name(status)
            if state == SUBSCRIBED:
                if not acknowledged.done():
                    acknowledged.set_result(None)
            elif state in FAILURE_STATES:
                reason = str(error) if error else state.lower()
                if not acknowledged.done():
                    acknowledged.set_exception(FeedOpenError(key.name, reason))
                else:
                    sink.on_failure(FeedClosedError(key.name, reason))

        try:
            await channel.subscribe(on_status)
            await asyncio.wait_for(acknowledged, timeout=self._ack_timeout)
        except asyncio.TimeoutError:
            await self._discard(client, channel)
            raise FeedOpenError(key.name, "timed out waiting for acknowledgment")
        except TransportError:
            await self._discard(client, channel)
            raise
        except Exception as e:
            await self._discard(client, channel)
            raise FeedOpenError(key.name, str(e)) from e

        return channel

    async def close(self, handle: Any) -> None:
        client = await self._get_client()
        try:
            await client.remove_channel(handle)
        except Exception as e:
            raise TransportError(f"Failed to remove realtime channel: {e}") from e

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await get_supabase_realtime_client()
        return self._client

    async def _discard(self, client: AsyncClient, channel: Any) -> None:
        try:
            await client.remove_channel(channel)
        except Exception:
            logger.warning("Failed to discard realtime channel after open failure", exc_info=True)

    def _deliver(self, key: SubscriptionKey, sink: IChangeFeedSink, payload: dict[str, Any]) -> None:
        try:
            event = parse_change_payload(payload, key.table)
        except (KeyError, ValueError, AttributeError):
            logger.warning("Dropping malformed change payload on %s", key.name)
            return
        sink.on_event(event)


def parse_change_payload(payload: dict[str, Any], table: Optional[str] = None) -> ChangeEvent:
    """
    Convert a ``postgres_changes`` payload into a ChangeEvent.

    Accepts both the wire shape (``data.type``/``record``/``old_record``)
    and the client shape (``eventType``/``new``/``old``).
    """
    data = payload.get("data", payload)
    kind = ChangeKind((data.get("type") or data.get("eventType")).lower())

    if kind is ChangeKind.DELETE:
        record = data.get("old_record") or data.get("old") or {}
    else:
        record = data.get("record") or data.get("new") or {}

    return ChangeEvent(
        kind=kind,
        record=record,
        table=data.get("table", table),
        commit_timestamp=data.get("commit_timestamp"),
    )


def _state_name(status: Any) -> str:
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)
