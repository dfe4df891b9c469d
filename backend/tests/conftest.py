"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules:
fake collaborators for the identity provider and the change feed transport,
and in-memory wiring of the identity bridge and channel registry.
"""

import asyncio
from typing import Any, Optional

import pytest

from api.dependencies import reset_container
from modules.identity.claims import InMemoryClaimStore
from modules.identity.models import AuthenticationResult, ExternalIdentity
from modules.identity.repository import InMemoryUserRepository
from modules.identity.service import IdentityBridge
from modules.realtime.interfaces import IChangeFeedSink
from modules.realtime.models import ChangeEvent, ChangeKind, SubscriptionKey
from modules.realtime.registry import ChannelRegistry
from shared.exceptions import TransportError


# Test claims secret (only for testing)
TEST_CLAIMS_SECRET = "test-claims-secret-for-testing-only"


def make_identity(
    external_user_id: str = "user-test-123",
    emails: Optional[list[str]] = None,
    display_name: Optional[str] = None,
    raw_metadata: Optional[dict[str, Any]] = None,
) -> ExternalIdentity:
    """Create an ExternalIdentity with sensible defaults."""
    return ExternalIdentity(
        external_user_id=external_user_id,
        emails=["test@example.com"] if emails is None else emails,
        display_name=display_name,
        raw_metadata=raw_metadata or {},
    )


class FakeIdentityProvider:
    """Identity provider returning a canned result and recording calls."""

    def __init__(self, result: Optional[AuthenticationResult] = None):
        self.result = result or AuthenticationResult(
            status_code=200,
            user=make_identity(),
            session_id="session-test-123",
        )
        self.calls: list[tuple[str, str, int]] = []

    async def authenticate(
        self,
        token: str,
        token_type: str,
        session_duration_minutes: int,
    ) -> AuthenticationResult:
        self.calls.append((token, token_type, session_duration_minutes))
        return self.result


class FakeTransport:
    """
    Change feed transport that records open/close calls and lets tests
    emit crafted events synchronously.
    """

    def __init__(self):
        self.opened: list[SubscriptionKey] = []
        self.closed: list[Any] = []
        self.sinks: dict[str, IChangeFeedSink] = {}
        self.fail_open: Optional[Exception] = None
        # When set, open() waits for it before acknowledging
        self.gate: Optional[asyncio.Event] = None
        # When set, close() waits for it before releasing the feed
        self.close_gate: Optional[asyncio.Event] = None
        # Feeds opened upstream and not yet closed
        self.live = 0
        self.max_live = 0

    async def open(self, key: SubscriptionKey, sink: IChangeFeedSink) -> Any:
        self.opened.append(key)
        self.live += 1
        self.max_live = max(self.max_live, self.live)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_open is not None:
            self.live -= 1
            raise self.fail_open
        self.sinks[key.name] = sink
        return f"feed-{len(self.opened)}:{key.name}"

    async def close(self, handle: Any) -> None:
        if self.close_gate is not None:
            await self.close_gate.wait()
        self.closed.append(handle)
        self.live -= 1

    def emit(self, key: SubscriptionKey, kind: ChangeKind, record: dict[str, Any]) -> None:
        self.sinks[key.name].on_event(ChangeEvent(kind=kind, record=record, table=key.table))

    def fail(self, key: SubscriptionKey, error: TransportError) -> None:
        self.sinks[key.name].on_failure(error)


@pytest.fixture(autouse=True)
def reset_service_container():
    """Reset the service container before and after each test."""
    reset_container()
    yield
    reset_container()


@pytest.fixture
def repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def claim_store() -> InMemoryClaimStore:
    return InMemoryClaimStore()


@pytest.fixture
def bridge(repository, claim_store) -> IdentityBridge:
    return IdentityBridge(repository, claim_store)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry(transport) -> ChannelRegistry:
    return ChannelRegistry(transport)
