"""
Identity module interfaces.

The bridge depends on these protocols, not on concrete implementations.
This lets tests swap Supabase for in-memory storage and browser storage
for a signed cookie without touching IdentityBridge.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from .models import (
    AuthenticationResult,
    InternalOrganization,
    InternalUser,
    SessionClaims,
)


@runtime_checkable
class ISessionClaimStore(Protocol):
    """
    Storage port for the current session claims.

    Reads and writes must not require a network round trip.
    """

    def write(self, claims: SessionClaims) -> None:
        """Replace the stored claims."""
        ...

    def read(self) -> Optional[SessionClaims]:
        """Return the stored claims, or None if never set or cleared."""
        ...

    def clear(self) -> None:
        """Remove the stored claims. Idempotent."""
        ...


@runtime_checkable
class IUserRepository(Protocol):
    """
    CRUD over the internal users and organizations tables.

    Implementations must enforce uniqueness of ``external_user_id`` and
    ``external_org_id`` and report violations as ConflictError.
    """

    async def find_by_external_id(self, external_user_id: str) -> Optional[InternalUser]:
        ...

    async def find_by_id(self, user_id: int) -> Optional[InternalUser]:
        ...

    async def insert(self, fields: dict[str, Any]) -> InternalUser:
        """
        Create a user row.

        Raises:
            ConflictError: If a row already exists for the external id
            PersistenceError: On backing-store failure
        """
        ...

    async def update(self, user_id: int, fields: dict[str, Any]) -> InternalUser:
        """
        Update a user row.

        Raises:
            UserNotFoundError: If the row does not exist
            PersistenceError: On backing-store failure
        """
        ...

    async def delete_by_id(self, user_id: int) -> bool:
        """Delete a user row (administrative). Returns whether a row was removed."""
        ...

    async def find_org_by_external_id(self, external_org_id: str) -> Optional[InternalOrganization]:
        ...

    async def insert_org(self, fields: dict[str, Any]) -> InternalOrganization:
        ...

    async def update_org(self, org_id: int, fields: dict[str, Any]) -> InternalOrganization:
        ...


@runtime_checkable
class IIdentityProviderClient(Protocol):
    """
    Opaque client for the external identity provider.

    The bridge never parses provider tokens; it only consumes this result.
    """

    async def authenticate(
        self,
        token: str,
        token_type: str,
        session_duration_minutes: int,
    ) -> AuthenticationResult:
        """
        Exchange a magic link or OAuth token for a user and session.

        Raises:
            ExternalServiceError: If the provider cannot be reached
        """
        ...
