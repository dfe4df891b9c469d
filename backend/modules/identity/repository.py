"""
User repository implementations.

Provides both in-memory (for testing) and Supabase-backed (for production)
implementations of IUserRepository. Both enforce the uniqueness of the
provider-scoped identifiers and report violations as ConflictError.
"""

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from supabase import Client

from shared.exceptions import ConflictError
from shared.repository import BaseRepository
from .exceptions import OrganizationNotFoundError, UserNotFoundError
from .models import InternalOrganization, InternalUser

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
ORGANIZATIONS_TABLE = "organizations"

# Domain field -> column name, where they differ
USER_COLUMNS = {"external_user_id": "stytch_user_id"}
ORGANIZATION_COLUMNS = {"external_org_id": "stytch_org_id"}


class InMemoryUserRepository:
    """
    User repository with in-memory storage.

    For testing and development. Use SupabaseUserRepository for production.
    """

    def __init__(self):
        self._users: dict[int, InternalUser] = {}
        self._organizations: dict[int, InternalOrganization] = {}
        self._user_ids = itertools.count(1)
        self._organization_ids = itertools.count(1)

    @property
    def users(self) -> list[InternalUser]:
        """All stored users, in insertion order."""
        return list(self._users.values())

    async def find_by_external_id(self, external_user_id: str) -> Optional[InternalUser]:
        for user in self._users.values():
            if user.external_user_id == external_user_id:
                return user
        return None

    async def find_by_id(self, user_id: int) -> Optional[InternalUser]:
        return self._users.get(user_id)

    async def insert(self, fields: dict[str, Any]) -> InternalUser:
        external_user_id = fields["external_user_id"]
        if await self.find_by_external_id(external_user_id) is not None:
            raise ConflictError(
                f"User already exists for external id: {external_user_id}",
                code="CONFLICT",
                details={"external_user_id": external_user_id},
            )

        now = datetime.now(timezone.utc)
        user = InternalUser(
            **{"created_at": now, "updated_at": now, **fields},
            id=next(self._user_ids),
        )
        self._users[user.id] = user
        return user

    async def update(self, user_id: int, fields: dict[str, Any]) -> InternalUser:
        existing = self._users.get(user_id)
        if existing is None:
            raise UserNotFoundError(user_id)

        user = existing.model_copy(
            update={**fields, "updated_at": datetime.now(timezone.utc)}
        )
        self._users[user_id] = user
        return user

    async def delete_by_id(self, user_id: int) -> bool:
        return self._users.pop(user_id, None) is not None

    async def find_org_by_external_id(self, external_org_id: str) -> Optional[InternalOrganization]:
        for organization in self._organizations.values():
            if organization.external_org_id == external_org_id:
                return organization
        return None

    async def insert_org(self, fields: dict[str, Any]) -> InternalOrganization:
        external_org_id = fields["external_org_id"]
        if await self.find_org_by_external_id(external_org_id) is not None:
            raise ConflictError(
                f"Organization already exists for external id: {external_org_id}",
                code="CONFLICT",
                details={"external_org_id": external_org_id},
            )

        now = datetime.now(timezone.utc)
        organization = InternalOrganization(
            **{"created_at": now, "updated_at": now, **fields},
            id=next(self._organization_ids),
        )
        self._organizations[organization.id] = organization
        return organization

    async def update_org(self, org_id: int, fields: dict[str, Any]) -> InternalOrganization:
        existing = self._organizations.get(org_id)
        if existing is None:
            raise OrganizationNotFoundError(org_id)

        organization = existing.model_copy(
            update={**fields, "updated_at": datetime.now(timezone.utc)}
        )
        self._organizations[org_id] = organization
        return organization


class SupabaseUserRepository(BaseRepository[InternalUser]):
    """
    User repository with Supabase persistence.

    Relies on unique constraints on ``users.stytch_user_id`` and
    ``organizations.stytch_org_id``; a violation surfaces as ConflictError
    through BaseRepository._run.

    Note: This repository does NOT perform authorization checks.
    """

    def __init__(self, db: Client) -> None:
        super().__init__(db)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def find_by_external_id(self, external_user_id: str) -> Optional[InternalUser]:
        result = await self._run(
            self._db.table(USERS_TABLE)
            .select("*")
            .eq(USER_COLUMNS["external_user_id"], external_user_id)
            .limit(1)
        )
        if not result.data:
            return None
        return self._map_to_user(result.data[0])

    async def find_by_id(self, user_id: int) -> Optional[InternalUser]:
        result = await self._run(
            self._db.table(USERS_TABLE).select("*").eq("id", user_id).limit(1)
        )
        if not result.data:
            return None
        return self._map_to_user(result.data[0])

    async def insert(self, fields: dict[str, Any]) -> InternalUser:
        result = await self._run(
            self._db.table(USERS_TABLE).insert(_to_row(fields, USER_COLUMNS))
        )
        return self._map_to_user(result.data[0])

    async def update(self, user_id: int, fields: dict[str, Any]) -> InternalUser:
        row = _to_row(fields, USER_COLUMNS)
        row["updated_at"] = datetime.now(timezone.utc).isoformat()

        result = await self._run(
            self._db.table(USERS_TABLE).update(row).eq("id", user_id)
        )
        if not result.data:
            raise UserNotFoundError(user_id)
        return self._map_to_user(result.data[0])

    async def delete_by_id(self, user_id: int) -> bool:
        result = await self._run(
            self._db.table(USERS_TABLE).delete().eq("id", user_id)
        )
        return bool(result.data)

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    async def find_org_by_external_id(self, external_org_id: str) -> Optional[InternalOrganization]:
        result = await self._run(
            self._db.table(ORGANIZATIONS_TABLE)
            .select("*")
            .eq(ORGANIZATION_COLUMNS["external_org_id"], external_org_id)
            .limit(1)
        )
        if not result.data:
            return None
        return self._map_to_organization(result.data[0])

    async def insert_org(self, fields: dict[str, Any]) -> InternalOrganization:
        result = await self._run(
            self._db.table(ORGANIZATIONS_TABLE).insert(_to_row(fields, ORGANIZATION_COLUMNS))
        )
        return self._map_to_organization(result.data[0])

    async def update_org(self, org_id: int, fields: dict[str, Any]) -> InternalOrganization:
        row = _to_row(fields, ORGANIZATION_COLUMNS)
        row["updated_at"] = datetime.now(timezone.utc).isoformat()

        result = await self._run(
            self._db.table(ORGANIZATIONS_TABLE).update(row).eq("id", org_id)
        )
        if not result.data:
            raise OrganizationNotFoundError(org_id)
        return self._map_to_organization(result.data[0])

    # -------------------------------------------------------------------------
    # Mapping helpers
    # -------------------------------------------------------------------------

    def _map_to_user(self, row: dict[str, Any]) -> InternalUser:
        return InternalUser(
            id=row["id"],
            external_user_id=row[USER_COLUMNS["external_user_id"]],
            email=row.get("email") or "",
            name=row.get("name"),
            avatar_url=row.get("avatar_url"),
            organization_id=row.get("organization_id"),
            role=row.get("role") or "user",
            metadata=row.get("metadata") or {},
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
            last_login_at=_parse_timestamp(row.get("last_login_at")),
        )

    def _map_to_organization(self, row: dict[str, Any]) -> InternalOrganization:
        return InternalOrganization(
            id=row["id"],
            external_org_id=row[ORGANIZATION_COLUMNS["external_org_id"]],
            name=row.get("name") or "",
            slug=row.get("slug") or "",
            domain=row.get("domain"),
            settings=row.get("settings") or {},
            subscription_tier=row.get("subscription_tier") or "free",
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )


def _to_row(fields: dict[str, Any], columns: dict[str, str]) -> dict[str, Any]:
    """Rename domain fields to column names and serialize datetimes."""
    row = {}
    for field, value in fields.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        row[columns.get(field, field)] = value
    return row


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
