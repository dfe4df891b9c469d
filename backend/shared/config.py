"""
Centralized configuration for the identity bridge backend.

All settings are loaded from environment variables with sensible defaults.
Settings for each collaborator are namespaced (e.g., SUPABASE_*, STYTCH_*, REALTIME_*).
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Identity Bridge API"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # Stytch (external identity provider)
    stytch_project_id: str = ""
    stytch_secret: str = ""
    stytch_env: str = "test"
    stytch_timeout_seconds: float = 10.0

    # Sessions
    session_duration_minutes: int = 480  # 8 hours
    claims_secret: str = ""
    claims_cookie_name: str = "bridge_claims"
    claims_cookie_secure: bool = True
    # Negative disables revalidation (claims trusted until cleared)
    claims_max_age_seconds: int = 300

    # Users
    default_role: str = "user"

    # Realtime
    realtime_schema: str = "public"
    realtime_ack_timeout_seconds: float = 10.0

    @property
    def stytch_base_url(self) -> str:
        """Base URL of the provider API for the configured environment."""
        if self.stytch_env == "live":
            return "https://api.stytch.com/v1"
        return "https://test.stytch.com/v1"

    @property
    def claims_max_age(self) -> Optional[timedelta]:
        """Revalidation interval for cached claims, or None to never revalidate."""
        if self.claims_max_age_seconds < 0:
            return None
        return timedelta(seconds=self.claims_max_age_seconds)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
