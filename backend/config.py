"""
Configuration management for the Payment Order API.

Loads settings from .env via pydantic-settings.

Security notes:
    - Gateway callbacks are only accepted when GATEWAY_CALLBACK_SECRET is set
    - validate_production_settings() enforces strict CORS and secrets in production
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/payments.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "payment-api"
    jwt_access_ttl_minutes: int = 15

    # ── Payment Gateway ─────────────────────────────────────────────
    gateway_callback_secret: str = ""

    # ── Order Lifecycle ─────────────────────────────────────────────
    order_expire_minutes: int = 15
    expiry_sweep_seconds: int = 60
    cas_max_attempts: int = 3            # bounded optimistic retry

    # ── Client Polling ──────────────────────────────────────────────
    poll_interval_seconds: float = 3.0
    poll_query_timeout_seconds: float = 2.5
    poll_max_duration_seconds: float = 900.0

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def async_database_url(self) -> str:
        """Rewrite sqlite:///... to sqlite+aiosqlite:///... for the async driver."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return self.database_url

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to verify bearer tokens on mutating endpoints."
                )
            if not self.gateway_callback_secret:
                raise ValueError(
                    "GATEWAY_CALLBACK_SECRET must be set in production. "
                    "Unsigned gateway callbacks are always rejected."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if not self.gateway_callback_secret:
                warnings.append("GATEWAY_CALLBACK_SECRET unset (all gateway callbacks will be rejected)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
