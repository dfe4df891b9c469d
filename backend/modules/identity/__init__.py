"""
Identity module.

Reconciles external identity-provider users with internal user records
and caches the reconciled identity as session claims.

Public API:
- IdentityBridge: Reconciliation and claims lifecycle
- SignInFlow: Provider callback -> reconciled claims
- ISessionClaimStore / IUserRepository / IIdentityProviderClient: Ports
- Models: ExternalIdentity, InternalUser, SessionClaims, ...
- Identity exceptions
"""

from .interfaces import IIdentityProviderClient, ISessionClaimStore, IUserRepository
from .models import (
    AuthenticationResult,
    ExternalIdentity,
    ExternalOrganization,
    InternalOrganization,
    InternalUser,
    RevalidationPolicy,
    SessionClaims,
)
from .exceptions import (
    AuthenticationFailedError,
    OrganizationNotFoundError,
    ReconciliationError,
    UserNotFoundError,
)
from .service import IdentityBridge
from .flow import SignInFlow

__all__ = [
    # Interfaces
    "IIdentityProviderClient",
    "ISessionClaimStore",
    "IUserRepository",
    # Models
    "AuthenticationResult",
    "ExternalIdentity",
    "ExternalOrganization",
    "InternalOrganization",
    "InternalUser",
    "RevalidationPolicy",
    "SessionClaims",
    # Exceptions
    "AuthenticationFailedError",
    "OrganizationNotFoundError",
    "ReconciliationError",
    "UserNotFoundError",
    # Services
    "IdentityBridge",
    "SignInFlow",
]
