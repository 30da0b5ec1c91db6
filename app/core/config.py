"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app and the background token
refresh scheduler share a consistent configuration surface.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class _EnvSettings(BaseSettings):
    """Base class reading values from the process environment and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class MercadoLibreSettings(_EnvSettings):
    """Configuration required for interacting with the MercadoLibre APIs."""

    client_id: str = Field(..., validation_alias="ML_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="ML_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="ML_REDIRECT_URI")
    auth_base_url: str = Field(
        "https://auth.mercadolibre.com.ar", validation_alias="ML_AUTH_BASE_URL"
    )
    api_base_url: str = Field(
        "https://api.mercadolibre.com", validation_alias="ML_API_BASE_URL"
    )
    request_timeout_seconds: float = Field(
        10.0,
        validation_alias="ML_REQUEST_TIMEOUT_SECONDS",
        description="Upper bound applied to every remote call.",
    )
    default_category_id: str = Field(
        "MLA1051",
        validation_alias="ML_DEFAULT_CATEGORY_ID",
        description="Category assigned to listings created from local products.",
    )
    currency_id: str = Field("ARS", validation_alias="ML_CURRENCY_ID")
    listing_type_id: str = Field("bronze", validation_alias="ML_LISTING_TYPE_ID")


class OAuthSettings(_EnvSettings):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    refresh_lead_seconds: int = Field(
        3600,
        validation_alias="ML_REFRESH_LEAD_SECONDS",
        description=(
            "Tokens expiring within this window are refreshed. Must exceed the "
            "scheduler interval gap so tokens never expire mid-use."
        ),
    )


class SchedulerSettings(_EnvSettings):
    """Background token refresh sweep configuration."""

    enabled: bool = Field(True, validation_alias="TOKEN_REFRESH_ENABLED")
    interval_seconds: float = Field(
        3600.0, validation_alias="TOKEN_REFRESH_INTERVAL_SECONDS"
    )


class SyncSettings(_EnvSettings):
    """Product synchronization limits."""

    max_concurrency: int = Field(
        4,
        ge=1,
        validation_alias="SYNC_MAX_CONCURRENCY",
        description="Concurrent remote catalog calls allowed per sync run.",
    )
    deadline_seconds: Optional[float] = Field(
        120.0,
        validation_alias="SYNC_DEADLINE_SECONDS",
        description="Overall time budget for one sync run; unset disables it.",
    )


class SecuritySettings(_EnvSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class AppSettings(_EnvSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    database_path: str = Field(
        "data/marketplace.db", validation_alias="DATABASE_PATH"
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    mercadolibre: MercadoLibreSettings = Field(default_factory=MercadoLibreSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "MercadoLibreSettings",
    "OAuthSettings",
    "SchedulerSettings",
    "SecuritySettings",
    "SyncSettings",
    "get_settings",
]
