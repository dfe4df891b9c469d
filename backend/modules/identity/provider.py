"""
Identity provider client.

Exchanges magic link and OAuth tokens with Stytch's REST API and returns
the structured AuthenticationResult the bridge consumes.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from shared.exceptions import ExternalServiceError
from .models import AuthenticationResult, ExternalIdentity

logger = logging.getLogger(__name__)

# token_type -> authenticate endpoint
AUTHENTICATE_PATHS = {
    "magic_links": "/magic_links/authenticate",
    "oauth": "/oauth/authenticate",
}


class StytchClient:
    """
    Minimal async client for the provider's authenticate endpoints.

    Only the fields the bridge needs are read from the response; everything
    else stays opaque.
    """

    def __init__(
        self,
        project_id: str,
        secret: str,
        base_url: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._auth = (project_id, secret)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    async def authenticate(
        self,
        token: str,
        token_type: str,
        session_duration_minutes: int,
    ) -> AuthenticationResult:
        path = AUTHENTICATE_PATHS.get(token_type)
        if path is None:
            return AuthenticationResult(status_code=400)

        body = {"token": token, "session_duration_minutes": session_duration_minutes}
        try:
            response = await self._post(path, body)
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"Identity provider request failed: {e}",
                service="stytch",
                code="PROVIDER_UNAVAILABLE",
            ) from e

        if response.status_code != 200:
            logger.info(
                "Provider rejected %s token with status %s",
                token_type,
                response.status_code,
            )
            return AuthenticationResult(status_code=response.status_code)

        return parse_authenticate_response(response.json())

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        url = f"{self._base_url}{path}"
        if self._http_client is not None:
            return await self._http_client.post(url, json=body, auth=self._auth)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, json=body, auth=self._auth)


def parse_authenticate_response(payload: dict[str, Any]) -> AuthenticationResult:
    """Map a successful authenticate payload onto AuthenticationResult."""
    session = payload.get("session") or payload.get("user_session") or {}
    expires_at = session.get("expires_at")

    return AuthenticationResult(
        status_code=payload.get("status_code", 200),
        user=ExternalIdentity.from_provider_user(payload["user"]),
        session_id=session.get("session_id"),
        session_expires_at=(
            datetime.fromisoformat(expires_at.replace("Z", "+00:00")) if expires_at else None
        ),
    )
