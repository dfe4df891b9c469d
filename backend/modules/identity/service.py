"""
Identity bridge implementation.

Reconciles identities asserted by the external provider against the
internal users and organizations tables, and keeps the reconciled
identity in a session claim store so later requests can rebuild it
without contacting the provider again.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from shared.exceptions import ConflictError

from .exceptions import ReconciliationError
from .interfaces import ISessionClaimStore, IUserRepository
from .models import (
    ExternalIdentity,
    ExternalOrganization,
    InternalOrganization,
    InternalUser,
    RevalidationPolicy,
    SessionClaims,
)

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"
FALLBACK_NAME = "User"


class IdentityBridge:
    """
    Bridge between the external identity provider and the user table.

    One instance is constructed per application or session context and
    handed to its consumers. The bridge is the only writer of its claim
    store.

    Reconciliation failures always propagate: without a successful
    reconcile() the caller must treat the user as unauthenticated.
    """

    def __init__(
        self,
        repository: IUserRepository,
        store: ISessionClaimStore,
        default_role: str = DEFAULT_ROLE,
    ):
        self._repository = repository
        self._store = store
        self._default_role = default_role

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def reconcile(
        self,
        identity: ExternalIdentity,
        organization_id: Optional[int] = None,
    ) -> InternalUser:
        """
        Create or update the internal user linked to an external identity.

        Args:
            identity: The identity returned by the provider
            organization_id: Organization to link, when one was supplied
                out of band (e.g., an invitation)

        Returns:
            The created or updated InternalUser

        Raises:
            PersistenceError: If the backing store fails
        """
        existing = await self._repository.find_by_external_id(identity.external_user_id)
        if existing is not None:
            return await self._update_user(existing, identity, organization_id)

        fields = self._new_user_fields(identity, organization_id)
        try:
            user = await self._repository.insert(fields)
        except ConflictError:
            # Another reconciliation created the row first
            logger.info(
                "User for external id %s created concurrently, retrying as update",
                identity.external_user_id,
            )
            existing = await self._repository.find_by_external_id(identity.external_user_id)
            if existing is None:
                raise ReconciliationError(identity.external_user_id)
            return await self._update_user(existing, identity, organization_id)

        logger.info("Created user %s for external id %s", user.id, identity.external_user_id)
        return user

    async def refresh_user(self, claims: SessionClaims) -> Optional[InternalUser]:
        """
        Re-fetch the user behind a set of claims.

        Returns None if the row no longer exists; the caller must treat that
        as a forced sign-out.
        """
        user = await self._repository.find_by_id(claims.internal_user_id)
        if user is None:
            return None
        if user.external_user_id != claims.external_user_id:
            logger.warning(
                "User %s is no longer linked to external id %s",
                claims.internal_user_id,
                claims.external_user_id,
            )
            return None
        return user

    async def link_organization(self, user_id: int, organization_id: int) -> InternalUser:
        """
        Associate a user with an organization.

        Raises:
            UserNotFoundError: If the user no longer exists
        """
        user = await self._repository.update(user_id, {"organization_id": organization_id})
        logger.info("Linked user %s to organization %s", user_id, organization_id)
        return user

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    async def reconcile_organization(self, external_org: ExternalOrganization) -> InternalOrganization:
        """
        Create or update the internal organization linked to a provider organization.

        Same create-or-update pattern as reconcile(), keyed by ``external_org_id``.
        """
        existing = await self._repository.find_org_by_external_id(external_org.external_org_id)
        if existing is not None:
            return await self._update_organization(existing, external_org)

        try:
            organization = await self._repository.insert_org(
                self._organization_fields(external_org, {})
            )
        except ConflictError:
            logger.info(
                "Organization for external id %s created concurrently, retrying as update",
                external_org.external_org_id,
            )
            existing = await self._repository.find_org_by_external_id(external_org.external_org_id)
            if existing is None:
                raise ReconciliationError(external_org.external_org_id)
            return await self._update_organization(existing, external_org)

        logger.info(
            "Created organization %s for external id %s",
            organization.id,
            external_org.external_org_id,
        )
        return organization

    # -------------------------------------------------------------------------
    # Claims
    # -------------------------------------------------------------------------

    def issue_claims(self, user: InternalUser, external_session_id: str) -> SessionClaims:
        """Derive claims from the current user state and store them."""
        claims = SessionClaims(
            internal_user_id=user.id,
            external_user_id=user.external_user_id,
            organization_id=user.organization_id,
            role=user.role,
            email=user.email,
            external_session_id=external_session_id,
        )
        self._store.write(claims)
        return claims

    def current_claims(self) -> Optional[SessionClaims]:
        """Return the stored claims, or None if never set or cleared."""
        return self._store.read()

    def clear(self) -> None:
        """Remove the stored claims. Safe to call repeatedly."""
        self._store.clear()

    async def verify_session(self, policy: RevalidationPolicy) -> Optional[SessionClaims]:
        """
        Return the current claims, revalidating them when the policy says so.

        Revalidation re-reads the user row and re-issues the claims with the
        fresh role and organization. A vanished user clears the store and
        yields None.
        """
        claims = self.current_claims()
        if claims is None:
            return None
        if not policy.needs_refresh(claims):
            return claims

        user = await self.refresh_user(claims)
        if user is None:
            logger.info("Clearing claims for missing user %s", claims.internal_user_id)
            self.clear()
            return None

        return self.issue_claims(user, claims.external_session_id)

    # -------------------------------------------------------------------------
    # Field derivation
    # -------------------------------------------------------------------------

    def _new_user_fields(
        self,
        identity: ExternalIdentity,
        organization_id: Optional[int],
    ) -> dict[str, Any]:
        return {
            "external_user_id": identity.external_user_id,
            "email": identity.primary_email,
            "name": resolve_name(identity),
            "role": self._default_role,
            "organization_id": organization_id,
            "metadata": {"provider": dict(identity.raw_metadata)},
            "last_login_at": datetime.now(timezone.utc),
        }

    async def _update_user(
        self,
        existing: InternalUser,
        identity: ExternalIdentity,
        organization_id: Optional[int],
    ) -> InternalUser:
        now = datetime.now(timezone.utc)
        last_login_at = now
        if existing.last_login_at is not None and existing.last_login_at > now:
            last_login_at = existing.last_login_at

        fields: dict[str, Any] = {
            "email": _prefer_incoming(existing.email, identity.primary_email),
            "name": _prefer_incoming(existing.name, identity.display_name) or resolve_name(identity),
            "metadata": merge_metadata(existing.metadata, {"provider": identity.raw_metadata}),
            "last_login_at": last_login_at,
        }
        if organization_id is not None:
            fields["organization_id"] = organization_id

        user = await self._repository.update(existing.id, fields)
        logger.debug("Updated user %s for external id %s", user.id, identity.external_user_id)
        return user

    async def _update_organization(
        self,
        existing: InternalOrganization,
        external_org: ExternalOrganization,
    ) -> InternalOrganization:
        fields = self._organization_fields(external_org, existing.settings)
        fields["name"] = _prefer_incoming(existing.name, external_org.name)
        fields["slug"] = _prefer_incoming(existing.slug, external_org.slug)
        fields["domain"] = _prefer_incoming(existing.domain, external_org.domain)
        fields.pop("external_org_id")
        return await self._repository.update_org(existing.id, fields)

    def _organization_fields(
        self,
        external_org: ExternalOrganization,
        settings: dict[str, Any],
    ) -> dict[str, Any]:
        return {
            "external_org_id": external_org.external_org_id,
            "name": external_org.name,
            "slug": external_org.slug,
            "domain": external_org.domain,
            "settings": merge_metadata(settings, {"provider": external_org.raw_metadata}),
        }


def resolve_name(identity: ExternalIdentity) -> str:
    """Display name, else the local part of the primary email, else a placeholder."""
    if identity.display_name:
        return identity.display_name
    if identity.primary_email:
        return identity.primary_email.split("@")[0]
    return FALLBACK_NAME


def merge_metadata(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """
    Merge metadata key by key, incoming values winning.

    Nested dictionaries are merged recursively so keys only present in the
    existing value survive.
    """
    merged = dict(existing)
    for key, value in incoming.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_metadata(current, value)
        else:
            merged[key] = value
    return merged


def _prefer_incoming(existing: Optional[str], incoming: Optional[str]) -> Optional[str]:
    return incoming if incoming else existing
