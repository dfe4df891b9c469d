"""
Dependency injection setup for FastAPI.

This module provides the "container" that wires together all module
implementations. Process-wide services (repository, provider client,
realtime registry) live in the container; the claim store and the
identity bridge are built per request around the caller's claims cookie.
"""

from typing import TYPE_CHECKING

from fastapi import Depends, Request

from modules.identity.claims import SignedCookieClaimStore
from modules.identity.interfaces import IIdentityProviderClient, IUserRepository
from modules.identity.models import RevalidationPolicy
from modules.identity.service import IdentityBridge
from shared.config import get_settings

# Type checking imports (implementations are imported lazily)
if TYPE_CHECKING:
    from modules.realtime.registry import ChannelRegistry


class ServiceContainer:
    """
    Container for all process-wide service instances.

    Services are created lazily on first access and cached for the
    lifetime of the container. shutdown() tears down realtime feeds;
    reset() drops every cached service (for testing).
    """

    def __init__(self) -> None:
        self._user_repository: "IUserRepository | None" = None
        self._identity_provider: "IIdentityProviderClient | None" = None
        self._realtime: "ChannelRegistry | None" = None

    @property
    def user_repository(self) -> "IUserRepository":
        """Get the user repository instance."""
        if self._user_repository is None:
            from modules.identity.repository import SupabaseUserRepository
            from shared.database import get_supabase_client
            self._user_repository = SupabaseUserRepository(get_supabase_client())
        return self._user_repository

    @property
    def identity_provider(self) -> "IIdentityProviderClient":
        """Get the identity provider client instance."""
        if self._identity_provider is None:
            from modules.identity.provider import StytchClient
            settings = get_settings()
            self._identity_provider = StytchClient(
                project_id=settings.stytch_project_id,
                secret=settings.stytch_secret,
                base_url=settings.stytch_base_url,
                timeout=settings.stytch_timeout_seconds,
            )
        return self._identity_provider

    @property
    def realtime(self) -> "ChannelRegistry":
        """Get the realtime channel registry instance."""
        if self._realtime is None:
            from modules.realtime.registry import ChannelRegistry
            from modules.realtime.transport import SupabaseChangeFeedTransport
            settings = get_settings()
            self._realtime = ChannelRegistry(
                SupabaseChangeFeedTransport(
                    schema=settings.realtime_schema,
                    ack_timeout=settings.realtime_ack_timeout_seconds,
                )
            )
        return self._realtime

    @property
    def has_realtime(self) -> bool:
        """Whether the realtime registry has been created."""
        return self._realtime is not None

    async def shutdown(self) -> None:
        """Close every realtime feed and wait for the closes to finish."""
        if self._realtime is not None:
            self._realtime.unsubscribe_all()
            await self._realtime.drain()

    def reset(self) -> None:
        """
        Reset all cached services.

        This is primarily for testing - allows tests to get fresh
        service instances with different mock dependencies.
        """
        self._user_repository = None
        self._identity_provider = None
        self._realtime = None


# Module-level container singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the singleton service container."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """
    Reset the service container.

    This clears the cached container, so the next call to get_container()
    will create a fresh container with new service instances.

    Primarily used for testing.
    """
    global _container
    _container = None


# FastAPI dependency functions
# These are the functions that should be used in route Depends() calls


def get_user_repository() -> IUserRepository:
    """FastAPI dependency for the user repository."""
    return get_container().user_repository


def get_identity_provider() -> IIdentityProviderClient:
    """FastAPI dependency for the identity provider client."""
    return get_container().identity_provider


def get_channel_registry() -> "ChannelRegistry":
    """FastAPI dependency for the realtime registry."""
    return get_container().realtime


def get_revalidation_policy() -> RevalidationPolicy:
    """FastAPI dependency for the claims revalidation policy."""
    return RevalidationPolicy(max_age=get_settings().claims_max_age)


def get_claim_store(request: Request) -> SignedCookieClaimStore:
    """FastAPI dependency for the caller's cookie-backed claim store."""
    settings = get_settings()
    return SignedCookieClaimStore(
        settings.claims_secret,
        request.cookies.get(settings.claims_cookie_name),
    )


def get_identity_bridge(
    store: SignedCookieClaimStore = Depends(get_claim_store),
    repository: IUserRepository = Depends(get_user_repository),
) -> IdentityBridge:
    """FastAPI dependency for an identity bridge bound to the caller's claims."""
    return IdentityBridge(repository, store, default_role=get_settings().default_role)
