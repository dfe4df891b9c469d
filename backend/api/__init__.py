"""
Identity bridge API package.

Provides the FastAPI application exposing the sign-in callback, session
endpoints and realtime change streams.
"""

from .app import app, create_app

__all__ = ["app", "create_app"]
