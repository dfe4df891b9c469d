"""
Identity module data models.

These models define the values exchanged with the identity provider,
the reconciled internal records, and the cached session claims.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from pydantic import BaseModel, Field


class ExternalIdentity(BaseModel):
    """
    A user as asserted by the external identity provider.

    Never persisted verbatim; its fields are folded into InternalUser.
    """

    external_user_id: str = Field(..., min_length=1, description="Provider-scoped user ID")
    emails: list[str] = Field(default_factory=list, description="Emails, primary first")
    display_name: Optional[str] = Field(None, description="Display name")
    raw_metadata: dict[str, Any] = Field(default_factory=dict, description="Opaque provider data")

    model_config = {"frozen": True}

    @property
    def primary_email(self) -> str:
        return self.emails[0] if self.emails else ""

    @classmethod
    def from_provider_user(cls, payload: dict[str, Any]) -> "ExternalIdentity":
        """
        Build an identity from the provider's user object.

        Expects the Stytch user shape: ``user_id``, ``emails`` as a list of
        ``{"email": ...}`` and ``name`` with ``first_name``/``last_name``.
        """
        emails = [e["email"] for e in payload.get("emails") or [] if e.get("email")]

        name = payload.get("name") or {}
        display_name = None
        if name.get("first_name"):
            display_name = f"{name['first_name']} {name.get('last_name') or ''}".strip()

        return cls(
            external_user_id=payload["user_id"],
            emails=emails,
            display_name=display_name,
            raw_metadata={
                "created_at": payload.get("created_at"),
                "phone_numbers": payload.get("phone_numbers") or [],
                "trusted_metadata": payload.get("trusted_metadata") or {},
                "untrusted_metadata": payload.get("untrusted_metadata") or {},
            },
        )


class ExternalOrganization(BaseModel):
    """An organization as asserted by the external identity provider."""

    external_org_id: str = Field(..., min_length=1, description="Provider-scoped organization ID")
    name: str = Field(..., description="Organization name")
    slug: str = Field(..., description="URL slug")
    email_allowed_domains: list[str] = Field(default_factory=list)
    raw_metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def domain(self) -> Optional[str]:
        return self.email_allowed_domains[0] if self.email_allowed_domains else None

    @classmethod
    def from_provider_organization(cls, payload: dict[str, Any]) -> "ExternalOrganization":
        """Build an organization from the provider's organization object."""
        return cls(
            external_org_id=payload["organization_id"],
            name=payload.get("organization_name") or "",
            slug=payload.get("organization_slug") or "",
            email_allowed_domains=payload.get("email_allowed_domains") or [],
            raw_metadata=payload,
        )


class InternalUser(BaseModel):
    """
    The reconciled user record owned by the application database.

    ``external_user_id`` is unique across rows; the bridge never creates a
    second row for an identity that is already linked.
    """

    id: int = Field(..., description="Internal surrogate key")
    external_user_id: str = Field(..., description="Link to the provider identity")
    email: str = Field(default="", description="Primary email")
    name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    organization_id: Optional[int] = Field(None, description="Owning organization")
    role: str = Field(default="user", description="Role (lowest tier by default)")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class InternalOrganization(BaseModel):
    """The reconciled organization record owned by the application database."""

    id: int = Field(..., description="Internal surrogate key")
    external_org_id: str = Field(..., description="Link to the provider organization")
    name: str = Field(..., description="Organization name")
    slug: str = Field(..., description="URL slug")
    domain: Optional[str] = Field(None, description="Primary allowed email domain")
    settings: dict[str, Any] = Field(default_factory=dict)
    subscription_tier: str = Field(default="free")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionClaims(BaseModel):
    """
    Locally cached identity assertion.

    A snapshot of InternalUser fields as of the last reconciliation. It is
    not authoritative; use IdentityBridge.refresh_user to revalidate.
    """

    internal_user_id: int
    external_user_id: str
    organization_id: Optional[int] = None
    role: str
    email: str
    external_session_id: str
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class AuthenticationResult(BaseModel):
    """Structured result of an identity provider authenticate call."""

    status_code: int
    user: Optional[ExternalIdentity] = None
    session_id: Optional[str] = None
    session_expires_at: Optional[datetime] = None


class RevalidationPolicy(BaseModel):
    """
    When cached claims must be checked against the user table.

    ``max_age=None`` trusts claims until they are cleared, ``timedelta(0)``
    revalidates on every read, anything else revalidates claims older than
    ``max_age``.
    """

    max_age: Optional[timedelta] = None

    model_config = {"frozen": True}

    def needs_refresh(self, claims: SessionClaims, now: Optional[datetime] = None) -> bool:
        if self.max_age is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - claims.issued_at >= self.max_age
