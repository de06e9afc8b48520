"""Application configuration."""

import logging
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FEED_URLS = [
    "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/camsys%2Fsubway-alerts",
]

# Fixed polling cadence; not exposed as a setting
POLL_INTERVAL_SECONDS = 300.0


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "NYCTcord"
    DEBUG: bool = False

    # Database Settings
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///nyctcord.db",
        validation_alias="SECRET_DATABASE_URL",
    )
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Feed Settings
    FEED_URLS: str = Field(
        default=",".join(DEFAULT_FEED_URLS),
        validation_alias="MTA_FEEDS",
        validate_default=True,
    )
    FEED_TIMEOUT_SECONDS: float = 15.0
    FEED_FETCH_CONCURRENCY: int = 4

    @field_validator("FEED_URLS", mode="after")
    @classmethod
    def parse_feed_urls(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated feed URLs, falling back to the default feeds when none remain."""
        parts = v if isinstance(v, list) else v.split(",")
        urls = [url.strip() for url in parts if url.strip()]
        return urls or list(DEFAULT_FEED_URLS)

    # Upper bound for the whole database-write phase of one poll round
    DB_WRITE_TIMEOUT_SECONDS: float = 10.0

    @field_validator("DB_WRITE_TIMEOUT_SECONDS", mode="after")
    @classmethod
    def validate_db_write_timeout(cls, v: float) -> float:
        """Ensure the write phase budget fits inside one poll interval."""
        if v <= 0 or v >= POLL_INTERVAL_SECONDS:
            msg = f"DB_WRITE_TIMEOUT_SECONDS must be between 0 and {POLL_INTERVAL_SECONDS:g} seconds"
            raise ValueError(msg)
        return v

    # Redis / Celery Settings (only needed by the Celery worker runtime)
    REDIS_URL: str | None = Field(default=None, validation_alias="SECRET_REDIS_URL")
    CELERY_BROKER_URL: str | None = Field(default=None, validation_alias="SECRET_CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND: str | None = Field(default=None, validation_alias="SECRET_CELERY_RESULT_BACKEND")

    # OpenTelemetry Settings
    OTEL_ENABLED: bool = True
    OTEL_SERVICE_NAME: str = "nyctcord-poller"
    OTEL_ENVIRONMENT: str = "production"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_LOGS_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = Field(default=None, validation_alias="SECRET_OTEL_HEADERS")

    # Log level for OTLP log export (NOTSET exports all levels)
    OTEL_LOG_LEVEL: str = "NOTSET"

    @field_validator("OTEL_LOG_LEVEL", mode="after")
    @classmethod
    def validate_otel_log_level(cls, v: str) -> str:
        """Validate and normalize OTEL log level."""
        normalized = v.upper()
        valid_levels = logging.getLevelNamesMapping()
        if normalized not in valid_levels:
            msg = f"Invalid OTEL_LOG_LEVEL '{v}'. Must be one of: {', '.join(sorted(valid_levels.keys()))}"
            raise ValueError(msg)
        return normalized

    # Logging Settings
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        normalized = v.upper()
        valid_levels = logging.getLevelNamesMapping()
        if normalized not in valid_levels:
            msg = f"Invalid LOG_LEVEL '{v}'. Must be one of: {', '.join(sorted(valid_levels.keys()))}"
            raise ValueError(msg)
        return normalized

    # "console" for terminals, "json" for log shippers
    LOG_FORMAT: Literal["console", "json"] = "console"


settings = Settings()


def require_config(*field_names: str) -> None:
    """
    Validate that required configuration fields are set.

    Args:
        *field_names: Names of required configuration fields

    Raises:
        ValueError: If any required field is missing or None

    Example:
        from nyctcord.core.config import require_config
        require_config("CELERY_BROKER_URL", "REDIS_URL")
    """
    missing = []
    for field in field_names:
        value = getattr(settings, field, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)

    if missing:
        msg = f"Required configuration missing: {', '.join(missing)}"
        raise ValueError(msg)
