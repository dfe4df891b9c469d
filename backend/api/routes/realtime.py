"""
Realtime change stream endpoints.

Streams row changes for one table (optionally filtered) over SSE. Each
connection is one subscriber on the shared ChannelRegistry, so many
clients watching the same key share a single upstream feed.
"""

import asyncio
import json
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sse_starlette.sse import EventSourceResponse

from modules.identity.claims import SignedCookieClaimStore
from modules.identity.models import SessionClaims
from modules.realtime.models import (
    FILTER_OPERATORS,
    ChangeEvent,
    ChangeKind,
    RealtimeCallbacks,
    SubscriptionKey,
)
from modules.realtime.registry import ChannelRegistry
from shared.exceptions import BridgeError

from ..dependencies import get_channel_registry, get_claim_store
from ..middleware.session import apply_claims_cookie, require_claims

router = APIRouter()


def queue_callbacks(
    queue: "asyncio.Queue[Union[ChangeEvent, Exception]]",
    table: str,
) -> RealtimeCallbacks:
    """Callback set that pushes every change (and error) onto a queue."""

    def push(kind: ChangeKind):
        return lambda record: queue.put_nowait(
            ChangeEvent(kind=kind, record=record, table=table)
        )

    return RealtimeCallbacks(
        on_insert=push(ChangeKind.INSERT),
        on_update=push(ChangeKind.UPDATE),
        on_delete=push(ChangeKind.DELETE),
        on_error=queue.put_nowait,
    )


async def event_generator(registry: ChannelRegistry, key: SubscriptionKey):
    """
    Yield SSE events until the feed fails or the client disconnects.

    The subscription is taken when the stream starts and released when it
    ends, so a response that is never sent holds no subscriber.

    Yields events in the format:
        event: insert | update | delete | error
        data: <json_data>
    """
    queue: "asyncio.Queue[Union[ChangeEvent, Exception]]" = asyncio.Queue()
    handle = registry.subscribe(key, queue_callbacks(queue, key.table))
    try:
        while True:
            item = await queue.get()
            if isinstance(item, Exception):
                payload = item.to_dict() if isinstance(item, BridgeError) else {"message": str(item)}
                yield {"event": "error", "data": json.dumps(payload)}
                return
            yield {
                "event": item.kind.value,
                "data": item.model_dump_json(exclude_none=True),
            }
    finally:
        registry.unsubscribe(handle)


@router.get("/{table}")
async def stream_changes(
    table: str,
    column: Optional[str] = Query(None, description="Filter column"),
    value: Optional[str] = Query(None, description="Filter value"),
    operator: str = Query("eq", description=f"One of: {', '.join(FILTER_OPERATORS)}"),
    claims: SessionClaims = Depends(require_claims),
    store: SignedCookieClaimStore = Depends(get_claim_store),
    registry: ChannelRegistry = Depends(get_channel_registry),
):
    """
    Stream changes to a table via SSE.

    Row-level filtering is applied upstream by the change feed; events
    are forwarded unmodified in delivery order.
    """
    try:
        key = SubscriptionKey(
            table=table,
            filter_column=column,
            filter_value=value,
            operator=operator,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    response = EventSourceResponse(
        event_generator(registry, key),
        media_type="text/event-stream",
    )
    # Claims re-issued by revalidation go out on the stream response
    apply_claims_cookie(response, store)
    return response
