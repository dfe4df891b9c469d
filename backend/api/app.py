"""
FastAPI application factory.

Creates and configures the FastAPI application instance.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config import get_settings as get_bridge_settings
from shared.logging_config import configure_logging

from .config import get_settings
from .dependencies import get_container
from .routes import auth, health, realtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs startup and shutdown logic. Realtime feeds are torn down on
    shutdown so no upstream subscription outlives the process.
    """
    settings = get_settings()
    configure_logging(get_bridge_settings().log_level)
    logger.info("Starting Identity Bridge API on %s:%s", settings.host, settings.port)
    yield
    await get_container().shutdown()
    logger.info("Shut down Identity Bridge API")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Identity Bridge API",
        description="Identity reconciliation and realtime change streams",
        version=get_bridge_settings().app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Register routes
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(realtime.router, prefix="/api/realtime", tags=["realtime"])

    return app


# Application instance for uvicorn
app = create_app()
