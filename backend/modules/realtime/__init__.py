"""
Realtime module.

Multiplexes upstream change feeds: one feed per (table, filter) key,
shared by every subscriber to that key.

Public API:
- ChannelRegistry: subscribe / unsubscribe / unsubscribe_all / active_keys
- IChangeFeedTransport: Transport port
- SupabaseChangeFeedTransport: Supabase realtime implementation
- Models: SubscriptionKey, ChannelHandle, RealtimeCallbacks, ChangeEvent
"""

from .interfaces import IChangeFeedSink, IChangeFeedTransport
from .models import (
    ChangeEvent,
    ChangeKind,
    ChannelHandle,
    RealtimeCallbacks,
    SubscriptionKey,
)
from .exceptions import FeedClosedError, FeedOpenError
from .registry import ChannelRegistry

__all__ = [
    # Interfaces
    "IChangeFeedSink",
    "IChangeFeedTransport",
    # Models
    "ChangeEvent",
    "ChangeKind",
    "ChannelHandle",
    "RealtimeCallbacks",
    "SubscriptionKey",
    # Exceptions
    "FeedClosedError",
    "FeedOpenError",
    # Registry
    "ChannelRegistry",
]
