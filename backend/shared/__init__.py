"""
Shared infrastructure for the identity bridge backend.

This package contains cross-cutting concerns that are used by multiple modules:
- config: Centralized settings management
- database: Supabase client factory
- exceptions: Base exception classes
- repository: Base repository with PostgREST error translation
- logging_config: Root logging setup

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import Settings, get_settings
from .database import get_supabase_client, get_supabase_realtime_client, reset_client_cache
from .exceptions import (
    BridgeError,
    NotFoundError,
    ConflictError,
    PersistenceError,
    AuthenticationError,
    ExternalServiceError,
    TransportError,
)
from .logging_config import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_supabase_client",
    "get_supabase_realtime_client",
    "reset_client_cache",
    "BridgeError",
    "NotFoundError",
    "ConflictError",
    "PersistenceError",
    "AuthenticationError",
    "ExternalServiceError",
    "TransportError",
    "configure_logging",
]
