"""
Auth request and response models.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from modules.identity.models import ExternalOrganization, InternalUser, SessionClaims


class CallbackRequest(BaseModel):
    """Token handed back by the identity provider's redirect."""

    token: str = Field(..., min_length=1)
    token_type: Literal["magic_links", "oauth"]
    organization: Optional[ExternalOrganization] = Field(
        None, description="Organization to create or join at signup"
    )


class ClaimsResponse(BaseModel):
    """The caller's current session claims."""

    user_id: int
    external_user_id: str
    organization_id: Optional[int]
    role: str
    email: str
    issued_at: datetime

    @classmethod
    def from_claims(cls, claims: SessionClaims) -> "ClaimsResponse":
        return cls(
            user_id=claims.internal_user_id,
            external_user_id=claims.external_user_id,
            organization_id=claims.organization_id,
            role=claims.role,
            email=claims.email,
            issued_at=claims.issued_at,
        )


class UserProfileResponse(BaseModel):
    """Fresh user profile read from the user table."""

    id: int
    email: str
    name: Optional[str]
    avatar_url: Optional[str]
    role: str
    organization_id: Optional[int]
    last_login_at: Optional[datetime]

    @classmethod
    def from_user(cls, user: InternalUser) -> "UserProfileResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar_url=user.avatar_url,
            role=user.role,
            organization_id=user.organization_id,
            last_login_at=user.last_login_at,
        )
