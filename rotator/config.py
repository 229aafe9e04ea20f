"""Rotator settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rotator.types import CredentialAlgorithm

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "jwks-rotator"}


class AppSettings(BaseModel):
    """Application identity and runtime settings."""

    environment: Literal["development", "staging", "production"] = "development"
    service: str = "jwks-rotator"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class DirectorySettings(BaseModel):
    """Identity-provider management API settings."""

    domain: str = Field(description="Tenant domain without scheme, e.g. example.eu.auth0.com.")
    client_id: str
    client_secret: SecretStr | None = None
    client_secret_name: str | None = None
    client_secret_field: str = "client_secret"
    audience: str | None = None
    page_size: int = Field(default=50, ge=1, le=100)
    timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("domain")
    @classmethod
    def strip_scheme(cls, value: str) -> str:
        """Normalize the domain to a bare host name."""
        host = value.strip().removeprefix("https://").rstrip("/")
        if not host or "://" in host:
            raise ValueError("directory.domain must be a bare host name.")
        return host

    @property
    def base_url(self) -> str:
        """Return the HTTPS origin of the tenant."""
        return f"https://{self.domain}"

    @property
    def resolved_audience(self) -> str:
        """Return the management API audience."""
        return self.audience or f"{self.base_url}/api/v2/"


class SecretsSettings(BaseModel):
    """Secret store settings."""

    region_name: str | None = None


class CacheSettings(BaseModel):
    """Freshness cache backend settings."""

    backend: Literal["embedded", "redis"] = "embedded"
    redis_url: str | None = None
    key_prefix: str = "jwks:"

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, value: str | None) -> str | None:
        """Ensure the Redis URL uses a supported scheme."""
        if value is not None and not value.startswith(("redis://", "rediss://")):
            raise ValueError("cache.redis_url must start with 'redis://' or 'rediss://'.")
        return value

    @model_validator(mode="after")
    def require_redis_url(self) -> CacheSettings:
        """Redis backend cannot run without a URL."""
        if self.backend == "redis" and not self.redis_url:
            raise ValueError("cache.redis_url is required when cache.backend is 'redis'.")
        return self


class RotationSettings(BaseModel):
    """Rotation policy and subject metadata field names."""

    jwks_uri_field: str = "jwks_uri"
    expiry_field: str = "jwks_expires_at"
    key_id_field: str = "key_id"
    credential_algorithm: CredentialAlgorithm = "RS256"
    default_ttl_seconds: int = Field(default=300, ge=0)
    concurrency: int = Field(default=1, ge=1, le=32)
    deadline_seconds: float | None = Field(default=None, gt=0)
    deadline_margin_seconds: float = Field(default=5.0, ge=0)
    fetch_timeout_seconds: float = Field(default=5.0, gt=0)
    key_use: Literal["sig", "enc"] | None = None


class Settings(BaseSettings):
    """Root settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = AppSettings()
    directory: DirectorySettings
    secrets: SecretsSettings = SecretsSettings()
    cache: CacheSettings = CacheSettings()
    rotation: RotationSettings = RotationSettings()


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    context_vars = structlog.contextvars.get_contextvars()
    event_dict.setdefault("invocation_id", str(context_vars.get("invocation_id", "unknown")))
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache settings from environment variables."""
    return Settings()
