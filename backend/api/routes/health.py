"""
Health check endpoints.

Provides endpoints for monitoring application health and readiness.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from shared.config import get_settings
from ..dependencies import get_container

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    database: str
    identity_provider: str
    realtime_feeds: int


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns 200 if the API is running.
    """
    return HealthResponse(status="healthy", version=get_settings().app_version)


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Readiness check endpoint.

    Reports whether the collaborators are configured and how many
    upstream realtime feeds are open.
    """
    settings = get_settings()
    database_ready = bool(settings.supabase_url and settings.supabase_service_role_key)
    provider_ready = bool(settings.stytch_project_id and settings.stytch_secret)
    ready = database_ready and provider_ready and bool(settings.claims_secret)

    container = get_container()
    feeds = len(container.realtime.active_keys()) if container.has_realtime else 0

    return ReadinessResponse(
        status="ready" if ready else "degraded",
        database="configured" if database_ready else "missing",
        identity_provider="configured" if provider_ready else "missing",
        realtime_feeds=feeds,
    )
