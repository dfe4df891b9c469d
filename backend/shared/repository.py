"""
Base repository class for database access.

Provides a common abstraction layer for all repositories, encapsulating
Supabase client access and providing shared utilities for data operations.
"""

import asyncio
from typing import Any, TypeVar, Generic
from supabase import Client
from postgrest.exceptions import APIError

from .exceptions import ConflictError, PersistenceError


T = TypeVar("T")

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Provides common functionality for database operations:
    - Supabase client access via self._db
    - Generic type parameter for model type hints
    - Translation of PostgREST errors into bridge exceptions

    Subclasses should implement domain-specific data access methods
    and handle dict-to-Pydantic model mapping internally.

    Example:
        class UserRepository(BaseRepository[InternalUser]):
            async def get_by_id(self, user_id: int) -> Optional[InternalUser]:
                result = await self._run(
                    self._db.table("users").select("*").eq("id", user_id)
                )
                if not result.data:
                    return None
                return self._map_to_user(result.data[0])
    """

    def __init__(self, db: Client) -> None:
        """
        Initialize the repository with a Supabase client.

        Args:
            db: Supabase client instance for database operations.
        """
        self._db = db

    def _execute(self, query: Any) -> Any:
        """
        Execute a PostgREST query, translating failures.

        Raises:
            ConflictError: On a unique constraint violation
            PersistenceError: On any other API failure
        """
        try:
            return query.execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ConflictError(
                    e.message or "Unique constraint violated",
                    code="CONFLICT",
                    details={"hint": e.details},
                ) from e
            raise PersistenceError(
                e.message or "Database request failed",
                code="PERSISTENCE_ERROR",
                details={"postgres_code": e.code},
            ) from e

    async def _run(self, query: Any) -> Any:
        """Run _execute() in a worker thread; the Supabase client blocks."""
        return await asyncio.to_thread(self._execute, query)
