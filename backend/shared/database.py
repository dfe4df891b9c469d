"""
Database client factory for Supabase.

Provides the service-role client used by repositories (bypasses RLS) and
the async client used for realtime change feeds.
"""

from typing import Optional
from supabase import create_client, acreate_client, Client, AsyncClient

from .config import get_settings

# Module-level client cache
_service_client: Optional[Client] = None
_realtime_client: Optional[AsyncClient] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client with service role (bypasses RLS).

    Use this for backend operations that need full database access,
    such as reconciling users on behalf of the identity provider.

    Returns:
        Supabase client configured with service role key
    """
    global _service_client

    if _service_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "Supabase configuration missing. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables."
            )
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client


async def get_supabase_realtime_client() -> AsyncClient:
    """
    Get the async Supabase client used for realtime subscriptions.

    Realtime channels live on the async client's websocket, so a single
    instance is shared by every change feed in the process.

    Returns:
        Async Supabase client configured with the anon key
    """
    global _realtime_client

    if _realtime_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise RuntimeError(
                "Supabase configuration missing. "
                "Set SUPABASE_URL and SUPABASE_ANON_KEY environment variables."
            )
        _realtime_client = await acreate_client(
            settings.supabase_url,
            settings.supabase_anon_key,
        )

    return _realtime_client


def reset_client_cache() -> None:
    """
    Reset the cached database clients.

    Useful for testing or when configuration changes.
    """
    global _service_client, _realtime_client
    _service_client = None
    _realtime_client = None
