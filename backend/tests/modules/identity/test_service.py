"""Tests for the identity bridge."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from modules.identity.exceptions import ReconciliationError, UserNotFoundError
from modules.identity.models import ExternalOrganization, RevalidationPolicy
from modules.identity.repository import InMemoryUserRepository
from modules.identity.service import IdentityBridge, merge_metadata, resolve_name
from shared.exceptions import ConflictError, PersistenceError
from tests.conftest import make_identity


class RacingRepository(InMemoryUserRepository):
    """
    Repository where another reconciliation inserts the same external id
    between the bridge's lookup and its insert.
    """

    def __init__(self):
        super().__init__()
        self.insert_attempts = 0

    async def insert(self, fields):
        self.insert_attempts += 1
        if self.insert_attempts == 1:
            await super().insert({**fields, "email": "winner@example.com"})
        return await super().insert(fields)


class TestReconcile:
    @pytest.mark.asyncio
    async def test_creates_user_with_defaults(self, bridge, repository):
        """First reconciliation should insert a least-privileged user."""
        user = await bridge.reconcile(make_identity("u1", emails=["a@x.com"]))

        assert user.email == "a@x.com"
        assert user.role == "user"
        assert user.organization_id is None
        assert user.external_user_id == "u1"
        assert user.last_login_at is not None
        assert len(repository.users) == 1

    @pytest.mark.asyncio
    async def test_second_reconcile_updates_and_keeps_id(self, bridge, repository):
        """Reconciling the same identity twice should update, never insert."""
        first = await bridge.reconcile(make_identity("u1", emails=["a@x.com"]))
        second = await bridge.reconcile(make_identity("u1", emails=["a@x.com"]))

        assert second.id == first.id
        assert len(repository.users) == 1

    @pytest.mark.asyncio
    async def test_second_email_wins(self, bridge, repository):
        """A new email for the same external id should replace the old one."""
        first = await bridge.reconcile(make_identity("u1", emails=["a@x.com"]))
        second = await bridge.reconcile(make_identity("u1", emails=["b@x.com"]))

        assert second.id == first.id
        assert second.email == "b@x.com"
        assert [u.external_user_id for u in repository.users] == ["u1"]

    @pytest.mark.asyncio
    async def test_empty_incoming_email_keeps_existing(self, bridge):
        """An identity without emails should not blank the stored email."""
        await bridge.reconcile(make_identity("u1", emails=["a@x.com"]))
        user = await bridge.reconcile(make_identity("u1", emails=[]))

        assert user.email == "a@x.com"

    @pytest.mark.asyncio
    async def test_name_resolution(self, bridge):
        """Display name should win; otherwise keep what is stored."""
        created = await bridge.reconcile(make_identity("u1", emails=["jane@x.com"]))
        assert created.name == "jane"

        renamed = await bridge.reconcile(
            make_identity("u1", emails=["jane@x.com"], display_name="Jane Doe")
        )
        assert renamed.name == "Jane Doe"

        unchanged = await bridge.reconcile(make_identity("u1", emails=["jane@x.com"]))
        assert unchanged.name == "Jane Doe"

    @pytest.mark.asyncio
    async def test_metadata_merged_incoming_wins(self, bridge):
        """Provider metadata should merge key by key with incoming values winning."""
        await bridge.reconcile(
            make_identity("u1", raw_metadata={"plan": "free", "locale": "en"})
        )
        user = await bridge.reconcile(make_identity("u1", raw_metadata={"plan": "pro"}))

        assert user.metadata["provider"] == {"plan": "pro", "locale": "en"}

    @pytest.mark.asyncio
    async def test_touches_last_login(self, bridge):
        """Every reconciliation should move last_login_at forward."""
        first = await bridge.reconcile(make_identity("u1"))
        second = await bridge.reconcile(make_identity("u1"))

        assert second.last_login_at >= first.last_login_at

    @pytest.mark.asyncio
    async def test_links_out_of_band_organization(self, bridge):
        """An organization id supplied out of band should be stored on create."""
        user = await bridge.reconcile(make_identity("u1"), organization_id=42)
        assert user.organization_id == 42

    @pytest.mark.asyncio
    async def test_update_without_organization_keeps_existing(self, bridge):
        """Reconciling without an organization should not unlink the user."""
        await bridge.reconcile(make_identity("u1"), organization_id=42)
        user = await bridge.reconcile(make_identity("u1"))
        assert user.organization_id == 42

    @pytest.mark.asyncio
    async def test_does_not_touch_role(self, bridge, repository):
        """Administrative role changes should survive re-authentication."""
        user = await bridge.reconcile(make_identity("u1"))
        await repository.update(user.id, {"role": "admin"})

        again = await bridge.reconcile(make_identity("u1"))

        assert again.role == "admin"

    @pytest.mark.asyncio
    async def test_custom_default_role(self, repository, claim_store):
        """The default role should be configurable."""
        bridge = IdentityBridge(repository, claim_store, default_role="viewer")
        user = await bridge.reconcile(make_identity("u1"))
        assert user.role == "viewer"


class TestReconcileConcurrency:
    @pytest.mark.asyncio
    async def test_conflict_on_insert_retries_as_update(self, claim_store):
        """A uniqueness violation on insert should be resolved as an update."""
        repository = RacingRepository()
        bridge = IdentityBridge(repository, claim_store)

        user = await bridge.reconcile(make_identity("u1", emails=["mine@example.com"]))

        assert len(repository.users) == 1
        assert user.email == "mine@example.com"
        assert repository.insert_attempts == 1

    @pytest.mark.asyncio
    async def test_concurrent_reconciles_produce_one_row(self, bridge, repository):
        """Duplicate callback delivery should never create two users."""
        results = await asyncio.gather(
            bridge.reconcile(make_identity("u1", emails=["a@x.com"])),
            bridge.reconcile(make_identity("u1", emails=["a@x.com"])),
        )

        assert results[0].id == results[1].id
        assert len(repository.users) == 1

    @pytest.mark.asyncio
    async def test_conflict_without_row_raises(self, claim_store):
        """A conflict that cannot be re-read should fail loudly."""
        repository = AsyncMock()
        repository.find_by_external_id.return_value = None
        repository.insert.side_effect = ConflictError("duplicate")
        bridge = IdentityBridge(repository, claim_store)

        with pytest.raises(ReconciliationError):
            await bridge.reconcile(make_identity("u1"))

    @pytest.mark.asyncio
    async def test_persistence_failure_propagates(self, claim_store):
        """Backing-store failures should surface to the caller, not be retried."""
        repository = AsyncMock()
        repository.find_by_external_id.side_effect = PersistenceError("database down")
        bridge = IdentityBridge(repository, claim_store)

        with pytest.raises(PersistenceError):
            await bridge.reconcile(make_identity("u1"))

        repository.insert.assert_not_called()
        assert claim_store.read() is None


class TestClaims:
    @pytest.mark.asyncio
    async def test_issue_claims_writes_store(self, bridge, claim_store):
        """issue_claims should derive claims from the user and store them."""
        user = await bridge.reconcile(make_identity("u1", emails=["a@x.com"]), organization_id=7)

        claims = bridge.issue_claims(user, "session-1")

        assert claims.internal_user_id == user.id
        assert claims.external_user_id == "u1"
        assert claims.organization_id == 7
        assert claims.role == "user"
        assert claims.email == "a@x.com"
        assert claims.external_session_id == "session-1"
        assert claim_store.read() == claims

    def test_current_claims_absent_when_never_set(self, bridge):
        """current_claims should be None before any sign-in."""
        assert bridge.current_claims() is None

    @pytest.mark.asyncio
    async def test_clear_removes_claims(self, bridge):
        """After clear(), current_claims() should be absent."""
        user = await bridge.reconcile(make_identity("u1"))
        bridge.issue_claims(user, "session-1")

        bridge.clear()

        assert bridge.current_claims() is None

    def test_clear_is_idempotent(self, bridge):
        """clear() should be safe to call repeatedly."""
        bridge.clear()
        bridge.clear()
        assert bridge.current_claims() is None


class TestRefreshUser:
    @pytest.mark.asyncio
    async def test_returns_fresh_values(self, bridge, repository):
        """refresh_user should reflect administrative changes made elsewhere."""
        user = await bridge.reconcile(make_identity("u1"))
        claims = bridge.issue_claims(user, "session-1")
        await repository.update(user.id, {"role": "admin", "organization_id": 3})

        fresh = await bridge.refresh_user(claims)

        assert fresh.role == "admin"
        assert fresh.organization_id == 3

    @pytest.mark.asyncio
    async def test_returns_none_for_deleted_user(self, bridge, repository):
        """A deleted user should come back as None (forced sign-out)."""
        user = await bridge.reconcile(make_identity("u1"))
        claims = bridge.issue_claims(user, "session-1")
        await repository.delete_by_id(user.id)

        assert await bridge.refresh_user(claims) is None

    @pytest.mark.asyncio
    async def test_returns_none_for_relinked_row(self, bridge, repository):
        """A row now linked to another identity should not be trusted."""
        user = await bridge.reconcile(make_identity("u1"))
        claims = bridge.issue_claims(user, "session-1")
        await repository.update(user.id, {"external_user_id": "someone-else"})

        assert await bridge.refresh_user(claims) is None


class TestVerifySession:
    @pytest.mark.asyncio
    async def test_no_claims(self, bridge):
        """Without claims there is no session."""
        assert await bridge.verify_session(RevalidationPolicy(max_age=timedelta(0))) is None

    @pytest.mark.asyncio
    async def test_trusts_claims_without_max_age(self, bridge, repository):
        """A policy without max_age should never consult the repository."""
        user = await bridge.reconcile(make_identity("u1"))
        claims = bridge.issue_claims(user, "session-1")
        await repository.delete_by_id(user.id)

        assert await bridge.verify_session(RevalidationPolicy()) == claims

    @pytest.mark.asyncio
    async def test_fresh_claims_not_revalidated(self, bridge, repository):
        """Claims younger than max_age should be returned as-is."""
        user = await bridge.reconcile(make_identity("u1"))
        claims = bridge.issue_claims(user, "session-1")
        await repository.update(user.id, {"role": "admin"})

        result = await bridge.verify_session(RevalidationPolicy(max_age=timedelta(hours=1)))

        assert result == claims
        assert result.role == "user"

    @pytest.mark.asyncio
    async def test_revalidation_reissues_fresh_claims(self, bridge, repository, claim_store):
        """Revalidated claims should carry the current role and organization."""
        user = await bridge.reconcile(make_identity("u1"))
        bridge.issue_claims(user, "session-1")
        await repository.update(user.id, {"role": "admin", "organization_id": 9})

        result = await bridge.verify_session(RevalidationPolicy(max_age=timedelta(0)))

        assert result.role == "admin"
        assert result.organization_id == 9
        assert result.external_session_id == "session-1"
        assert claim_store.read() == result

    @pytest.mark.asyncio
    async def test_deleted_user_forces_sign_out(self, bridge, repository):
        """A vanished user should clear the store."""
        user = await bridge.reconcile(make_identity("u1"))
        bridge.issue_claims(user, "session-1")
        await repository.delete_by_id(user.id)

        result = await bridge.verify_session(RevalidationPolicy(max_age=timedelta(0)))

        assert result is None
        assert bridge.current_claims() is None


class TestOrganizations:
    def make_org(self, **overrides) -> ExternalOrganization:
        data = {
            "external_org_id": "org-1",
            "name": "Acme",
            "slug": "acme",
            "email_allowed_domains": ["acme.com"],
        }
        data.update(overrides)
        return ExternalOrganization(**data)

    @pytest.mark.asyncio
    async def test_creates_organization(self, bridge):
        """First reconciliation should insert the organization."""
        org = await bridge.reconcile_organization(self.make_org())

        assert org.external_org_id == "org-1"
        assert org.name == "Acme"
        assert org.domain == "acme.com"
        assert org.subscription_tier == "free"

    @pytest.mark.asyncio
    async def test_updates_existing_organization(self, bridge):
        """Reconciling again should update in place."""
        first = await bridge.reconcile_organization(self.make_org())
        second = await bridge.reconcile_organization(self.make_org(name="Acme Inc"))

        assert second.id == first.id
        assert second.name == "Acme Inc"

    @pytest.mark.asyncio
    async def test_organization_conflict_retries_as_update(self, bridge, repository):
        """A racing organization insert should be resolved as an update."""
        original_insert = repository.insert_org

        async def racing_insert(fields):
            repository.insert_org = original_insert
            await original_insert({**fields, "name": "Other"})
            return await original_insert(fields)

        repository.insert_org = racing_insert

        org = await bridge.reconcile_organization(self.make_org())

        assert org.name == "Acme"
        assert org.id == 1

    @pytest.mark.asyncio
    async def test_link_organization(self, bridge):
        """link_organization should set the user's organization."""
        user = await bridge.reconcile(make_identity("u1"))
        linked = await bridge.link_organization(user.id, 5)
        assert linked.organization_id == 5

    @pytest.mark.asyncio
    async def test_link_organization_missing_user(self, bridge):
        """Linking a missing user should raise UserNotFoundError."""
        with pytest.raises(UserNotFoundError):
            await bridge.link_organization(999, 5)


class TestHelpers:
    def test_resolve_name_prefers_display_name(self):
        assert resolve_name(make_identity(display_name="Ada Lovelace")) == "Ada Lovelace"

    def test_resolve_name_falls_back_to_email(self):
        assert resolve_name(make_identity(emails=["ada@example.com"])) == "ada"

    def test_resolve_name_placeholder(self):
        assert resolve_name(make_identity(emails=[])) == "User"

    def test_merge_metadata_nested(self):
        merged = merge_metadata(
            {"provider": {"a": 1, "b": 2}, "app": True},
            {"provider": {"b": 3}},
        )
        assert merged == {"provider": {"a": 1, "b": 3}, "app": True}
