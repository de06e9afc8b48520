"""Tests for configuration module."""

import pytest
from nyctcord.core.config import DEFAULT_FEED_URLS, Settings, require_config, settings
from pydantic import ValidationError


class TestRequireConfig:
    """Tests for require_config function."""

    def test_require_config_passes_when_all_fields_present(self) -> None:
        """Test that require_config passes when all required fields are set."""
        require_config("DEBUG", "PROJECT_NAME", "CELERY_BROKER_URL")

    def test_require_config_raises_when_field_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that require_config raises ValueError when a field is None."""
        monkeypatch.setattr(settings, "REDIS_URL", None)

        with pytest.raises(ValueError, match="Required configuration missing: REDIS_URL"):
            require_config("REDIS_URL")

    def test_require_config_raises_when_field_whitespace_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that require_config raises ValueError when a field is whitespace only."""
        monkeypatch.setattr(settings, "PROJECT_NAME", "   ")

        with pytest.raises(ValueError, match="Required configuration missing: PROJECT_NAME"):
            require_config("PROJECT_NAME")

    def test_require_config_raises_with_multiple_missing_fields(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that require_config lists all missing fields in error message."""
        monkeypatch.setattr(settings, "REDIS_URL", None)
        monkeypatch.setattr(settings, "CELERY_BROKER_URL", None)

        with pytest.raises(ValueError, match="Required configuration missing:") as exc_info:
            require_config("REDIS_URL", "CELERY_BROKER_URL")

        assert "REDIS_URL" in str(exc_info.value)
        assert "CELERY_BROKER_URL" in str(exc_info.value)


class TestFeedUrls:
    """Tests for MTA_FEEDS parsing."""

    def test_default_feeds_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the subway alerts feed is polled by default."""
        monkeypatch.delenv("MTA_FEEDS", raising=False)

        test_settings = Settings(_env_file=None)

        assert test_settings.FEED_URLS == DEFAULT_FEED_URLS

    def test_comma_separated_feeds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that MTA_FEEDS is split on commas and trimmed."""
        monkeypatch.setenv("MTA_FEEDS", " https://a.example/feed , https://b.example/feed,")

        test_settings = Settings(_env_file=None)

        assert test_settings.FEED_URLS == ["https://a.example/feed", "https://b.example/feed"]

    @pytest.mark.parametrize("value", ["", " ", ", ,"])
    def test_blank_feeds_fall_back_to_defaults(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        """Test that an MTA_FEEDS value with no URLs falls back to the default feeds."""
        monkeypatch.setenv("MTA_FEEDS", value)

        test_settings = Settings(_env_file=None)

        assert test_settings.FEED_URLS == DEFAULT_FEED_URLS


class TestValidators:
    """Tests for settings validators."""

    def test_log_level_is_normalized(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that LOG_LEVEL is upper-cased."""
        monkeypatch.setenv("LOG_LEVEL", "debug")

        assert Settings(_env_file=None).LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that an unknown LOG_LEVEL fails validation."""
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ValidationError, match="Invalid LOG_LEVEL"):
            Settings(_env_file=None)

    def test_invalid_log_format_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that LOG_FORMAT only accepts console or json."""
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValidationError, match="LOG_FORMAT"):
            Settings(_env_file=None)

    def test_invalid_otel_log_level_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that an unknown OTEL_LOG_LEVEL fails validation."""
        monkeypatch.setenv("OTEL_LOG_LEVEL", "chatty")

        with pytest.raises(ValidationError, match="Invalid OTEL_LOG_LEVEL"):
            Settings(_env_file=None)

    @pytest.mark.parametrize("value", ["0", "-1", "300", "600"])
    def test_db_write_timeout_must_fit_interval(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        """Test that the write-phase budget must be positive and shorter than a poll interval."""
        monkeypatch.setenv("DB_WRITE_TIMEOUT_SECONDS", value)

        with pytest.raises(ValidationError, match="DB_WRITE_TIMEOUT_SECONDS"):
            Settings(_env_file=None)

    def test_database_url_from_secret_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the database URL is read from SECRET_DATABASE_URL."""
        monkeypatch.setenv("SECRET_DATABASE_URL", "postgresql+asyncpg://poller:pw@db:5432/nyctcord")

        assert Settings(_env_file=None).DATABASE_URL == "postgresql+asyncpg://poller:pw@db:5432/nyctcord"

    def test_test_environment_uses_sqlite(self) -> None:
        """Test that the test run points at an in-memory SQLite store."""
        assert settings.DATABASE_URL.startswith("sqlite+aiosqlite://")
        assert settings.OTEL_ENABLED is False
