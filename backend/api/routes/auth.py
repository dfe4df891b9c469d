"""
Authentication endpoints.

Completes the identity provider callback and exposes the resulting
session: current claims, a fresh profile, and sign-out.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from modules.identity.claims import SignedCookieClaimStore
from modules.identity.exceptions import AuthenticationFailedError
from modules.identity.flow import SignInFlow
from modules.identity.interfaces import IIdentityProviderClient
from modules.identity.models import RevalidationPolicy
from modules.identity.service import IdentityBridge
from shared.config import get_settings
from shared.exceptions import ExternalServiceError, NotFoundError, PersistenceError

from ..dependencies import (
    get_claim_store,
    get_identity_bridge,
    get_identity_provider,
    get_revalidation_policy,
)
from ..middleware.session import apply_claims_cookie, signed_out_response
from ..models.auth import CallbackRequest, ClaimsResponse, UserProfileResponse
from ..models.errors import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/callback",
    response_model=ClaimsResponse,
    responses={
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def auth_callback(
    request: CallbackRequest,
    response: Response,
    store: SignedCookieClaimStore = Depends(get_claim_store),
    bridge: IdentityBridge = Depends(get_identity_bridge),
    provider: IIdentityProviderClient = Depends(get_identity_provider),
) -> ClaimsResponse:
    """
    Complete a magic link or OAuth callback.

    Authenticates the token with the identity provider, reconciles the
    user (and requested organization), and sets the claims cookie. No
    cookie is set unless every step succeeded.
    """
    flow = SignInFlow(provider, bridge, get_settings().session_duration_minutes)
    try:
        claims = await flow.complete(request.token, request.token_type, request.organization)
    except AuthenticationFailedError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.to_dict())
    except ExternalServiceError as e:
        logger.warning("Identity provider unavailable: %s", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.to_dict())
    except NotFoundError as e:
        # Row vanished between lookup and update
        logger.warning("Reconciliation target disappeared: %s", e)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.to_dict())
    except PersistenceError as e:
        logger.error("Reconciliation failed: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())

    apply_claims_cookie(response, store)
    return ClaimsResponse.from_claims(claims)


@router.get("/session", response_model=ClaimsResponse, responses={401: {"model": ErrorResponse}})
async def get_session(
    response: Response,
    store: SignedCookieClaimStore = Depends(get_claim_store),
    bridge: IdentityBridge = Depends(get_identity_bridge),
    policy: RevalidationPolicy = Depends(get_revalidation_policy),
):
    """
    Get the current session claims.

    Claims older than the configured revalidation interval are checked
    against the user table and re-issued with fresh values.
    """
    try:
        claims = await bridge.verify_session(policy)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())

    if claims is None:
        return signed_out_response()

    apply_claims_cookie(response, store)
    return ClaimsResponse.from_claims(claims)


@router.get("/me", response_model=UserProfileResponse, responses={401: {"model": ErrorResponse}})
async def get_current_user_profile(
    bridge: IdentityBridge = Depends(get_identity_bridge),
):
    """
    Get the current user's profile straight from the user table.

    A user that no longer exists is signed out.
    """
    claims = bridge.current_claims()
    if claims is None:
        return signed_out_response()

    try:
        user = await bridge.refresh_user(claims)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())

    if user is None:
        bridge.clear()
        return signed_out_response("Account no longer exists")

    return UserProfileResponse.from_user(user)


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    bridge: IdentityBridge = Depends(get_identity_bridge),
) -> Response:
    """Clear the session. Safe to call when already signed out."""
    bridge.clear()
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(get_settings().claims_cookie_name)
    return response
