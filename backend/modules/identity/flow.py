"""
Sign-in flow.

Runs the steps of the authentication callback in order: authenticate the
token with the provider, reconcile the user (and organization, when one
was requested), then issue claims. Claims are written only when every
step succeeded.
"""

import logging
from typing import Optional

from .exceptions import AuthenticationFailedError
from .interfaces import IIdentityProviderClient
from .models import ExternalOrganization, SessionClaims
from .service import IdentityBridge

logger = logging.getLogger(__name__)

SUPPORTED_TOKEN_TYPES = ("magic_links", "oauth")


class SignInFlow:
    """Completes a provider callback into a reconciled, cached identity."""

    def __init__(
        self,
        provider: IIdentityProviderClient,
        bridge: IdentityBridge,
        session_duration_minutes: int = 480,
    ):
        self._provider = provider
        self._bridge = bridge
        self._session_duration_minutes = session_duration_minutes

    async def complete(
        self,
        token: str,
        token_type: str,
        organization: Optional[ExternalOrganization] = None,
    ) -> SessionClaims:
        """
        Authenticate a callback token and issue session claims.

        Args:
            token: Token from the callback URL
            token_type: ``magic_links`` or ``oauth``
            organization: Organization to create or join, if requested at signup

        Returns:
            The issued SessionClaims

        Raises:
            AuthenticationFailedError: If the provider rejects the token
            ExternalServiceError: If the provider cannot be reached
            PersistenceError: If reconciliation fails
        """
        if not token:
            raise AuthenticationFailedError("No authentication token found")
        if token_type not in SUPPORTED_TOKEN_TYPES:
            raise AuthenticationFailedError(f"Unsupported token type: {token_type}")

        result = await self._provider.authenticate(
            token, token_type, self._session_duration_minutes
        )
        if result.status_code != 200 or result.user is None or not result.session_id:
            raise AuthenticationFailedError(status_code=result.status_code)

        organization_id = None
        if organization is not None:
            internal_org = await self._bridge.reconcile_organization(organization)
            organization_id = internal_org.id

        user = await self._bridge.reconcile(result.user, organization_id=organization_id)
        logger.info("Signed in user %s via %s", user.id, token_type)
        return self._bridge.issue_claims(user, result.session_id)
