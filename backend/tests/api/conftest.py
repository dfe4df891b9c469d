"""
Fixtures for API tests.

Configures the bridge settings through the environment and swaps the
process-wide collaborators for in-memory fakes.
"""

import pytest
from fastapi.testclient import TestClient

from api.app import app
from api.dependencies import (
    get_channel_registry,
    get_identity_provider,
    get_revalidation_policy,
    get_user_repository,
)
from modules.identity.models import RevalidationPolicy
from shared.config import get_settings
from tests.conftest import FakeIdentityProvider, TEST_CLAIMS_SECRET


@pytest.fixture
def bridge_env(monkeypatch):
    """Bridge settings suitable for cookie round trips over plain HTTP."""
    monkeypatch.setenv("CLAIMS_SECRET", TEST_CLAIMS_SECRET)
    monkeypatch.setenv("CLAIMS_COOKIE_SECURE", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def policy() -> RevalidationPolicy:
    return RevalidationPolicy()


@pytest.fixture
def client(bridge_env, repository, provider, registry, policy):
    """Test client wired to in-memory collaborators."""
    app.dependency_overrides[get_user_repository] = lambda: repository
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_channel_registry] = lambda: registry
    app.dependency_overrides[get_revalidation_policy] = lambda: policy
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def sign_in(client: TestClient, token: str = "token-abc", **body):
    """Complete a callback and return the response."""
    return client.post(
        "/api/auth/callback",
        json={"token": token, "token_type": "magic_links", **body},
    )
