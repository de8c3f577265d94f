"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Auth0 - shared with frontend (VITE_ prefix for Vite exposure)
    auth0_domain: str = Field(default="", validation_alias="VITE_AUTH0_DOMAIN")
    auth0_audience: str = Field(default="", validation_alias="VITE_AUTH0_AUDIENCE")
    auth0_client_id: str = Field(default="", validation_alias="VITE_AUTH0_CLIENT_ID")

    # Auth0 Management API (machine-to-machine application, backend only)
    auth0_management_client_id: str = Field(
        default="", validation_alias="AUTH0_MANAGEMENT_CLIENT_ID",
    )
    auth0_management_client_secret: str = Field(
        default="", validation_alias="AUTH0_MANAGEMENT_CLIENT_SECRET",
    )
    auth0_timeout: float = Field(default=10.0, validation_alias="AUTH0_TIMEOUT")

    # Namespace of the custom claims an Auth0 Action copies from app_metadata
    # into access tokens (e.g. "https://courses.example.com/internal_id").
    auth0_claims_namespace: str = Field(
        default="https://courses.example.com",
        validation_alias="AUTH0_CLAIMS_NAMESPACE",
    )

    # Identity lifecycle webhooks
    webhook_secret: str = Field(default="", validation_alias="IDENTITY_WEBHOOK_SECRET")
    webhook_tolerance_seconds: int = Field(
        default=300, validation_alias="IDENTITY_WEBHOOK_TOLERANCE_SECONDS",
    )

    # Development mode - bypasses auth for local development (shared with frontend)
    dev_mode: bool = Field(default=False, validation_alias="VITE_DEV_MODE")

    # Where interactive sync sends the browser when no usable referer exists
    frontend_url: str = Field(
        default="http://localhost:5173",
        validation_alias="VITE_FRONTEND_URL",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    # In-process read cache
    user_cache_max_entries: int = Field(
        default=10_000, validation_alias="USER_CACHE_MAX_ENTRIES",
    )

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE completely bypasses authentication, so we must ensure it's only
        used with local development databases to prevent accidental production exposure.
        SQLite databases are always local.
        """
        if not self.dev_mode:
            return self

        try:
            parsed = urlparse(self.database_url)
            scheme = parsed.scheme
            hostname = parsed.hostname or ""
        except ValueError:
            # If we can't parse the URL, block DEV_MODE (fail-safe)
            scheme = ""
            hostname = ""

        if scheme.startswith("sqlite"):
            return self

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses all authentication and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def auth0_issuer(self) -> str:
        """Get the Auth0 issuer URL."""
        return f"https://{self.auth0_domain}/"

    @property
    def auth0_jwks_url(self) -> str:
        """Get the Auth0 JWKS URL for fetching public keys."""
        return f"https://{self.auth0_domain}/.well-known/jwks.json"

    @property
    def auth0_management_audience(self) -> str:
        """Get the audience for Auth0 Management API tokens."""
        return f"https://{self.auth0_domain}/api/v2/"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
