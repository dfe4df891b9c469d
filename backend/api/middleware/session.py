"""
Claims cookie helpers.

Reads the caller's claims through the identity bridge and mirrors claim
store changes onto the response cookie.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse

from modules.identity.claims import SignedCookieClaimStore
from modules.identity.models import RevalidationPolicy, SessionClaims
from modules.identity.service import IdentityBridge
from shared.config import get_settings
from shared.exceptions import PersistenceError

from ..dependencies import get_identity_bridge, get_revalidation_policy


def expired_cookie_headers() -> dict[str, str]:
    """Headers that remove the claims cookie from the client."""
    response = Response()
    response.delete_cookie(get_settings().claims_cookie_name)
    return {"set-cookie": response.headers["set-cookie"]}


class SessionError(HTTPException):
    """Missing or invalid session, with consistent format. Always clears the cookie."""

    def __init__(self, detail: str = "Not signed in"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers=expired_cookie_headers(),
        )


def apply_claims_cookie(response: Response, store: SignedCookieClaimStore) -> None:
    """Set or delete the claims cookie if the store changed during the request."""
    if not store.dirty:
        return

    settings = get_settings()
    if store.cookie_value is None:
        response.delete_cookie(settings.claims_cookie_name)
        return

    response.set_cookie(
        settings.claims_cookie_name,
        store.cookie_value,
        max_age=settings.session_duration_minutes * 60,
        httponly=True,
        secure=settings.claims_cookie_secure,
        samesite="lax",
    )


def signed_out_response(detail: str = "Not signed in") -> JSONResponse:
    """401 response that also removes the claims cookie."""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail},
        headers=expired_cookie_headers(),
    )


async def require_claims(
    bridge: IdentityBridge = Depends(get_identity_bridge),
    policy: RevalidationPolicy = Depends(get_revalidation_policy),
) -> SessionClaims:
    """
    Dependency that requires valid claims.

    Stale claims are revalidated against the user table first, so a user
    that was deleted is rejected here. Re-issued claims mark the store
    dirty; routes returning their own Response must pass it through
    apply_claims_cookie().

    Usage:
        @router.get("/protected")
        async def protected_route(claims: SessionClaims = Depends(require_claims)):
            return {"user_id": claims.internal_user_id}
    """
    try:
        claims: Optional[SessionClaims] = await bridge.verify_session(policy)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())

    if claims is None:
        raise SessionError()
    return claims
