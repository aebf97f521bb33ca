from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the FastAPI service.

    This is separate from src.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Plant Operations API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for plant operations: master data, raw material issuance, "
            "production entries, reconciliations and production reports."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed roles, units and sample master data after migrations.",
    )
    SEED_ADMIN_EMAIL: Optional[str] = Field(
        default=None, description="If set together with SEED_ADMIN_PASSWORD, seeding creates this admin user."
    )
    SEED_ADMIN_PASSWORD: Optional[str] = Field(default=None)

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level name")

    # Tokens
    JWT_SECRET_KEY: str = Field(default="change-me", description="HMAC secret used to sign JWTs")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # Production rules
    RECONCILIATION_EDIT_LIMIT: int = Field(
        default=3, ge=0, description="Maximum number of edits a non-admin may make to a reconciliation."
    )
    VARIANCE_GOOD_THRESHOLD: float = Field(
        default=2.0, ge=0, description="Absolute variance percent up to which a line is 'good'."
    )
    VARIANCE_WARNING_THRESHOLD: float = Field(
        default=5.0, ge=0, description="Absolute variance percent up to which a line is 'warning'."
    )

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]

    @field_validator("VARIANCE_WARNING_THRESHOLD")
    @classmethod
    def _warning_not_below_good(cls, v, info):
        good = info.data.get("VARIANCE_GOOD_THRESHOLD")
        if good is not None and v < good:
            raise ValueError("VARIANCE_WARNING_THRESHOLD must be >= VARIANCE_GOOD_THRESHOLD")
        return v


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    Return the process-wide AppSettings populated from environment variables.

    Tests that change the environment should call get_app_settings.cache_clear().
    """
    return AppSettings()
