"""Tests for environment-driven settings."""
import pytest

from app.core.config import Settings


class TestSettings:
    """Test settings parsing and validation."""

    def test_env_aliases_are_read(self, monkeypatch):
        monkeypatch.setenv("CLEANUP_MAX_WORKERS", "7")
        monkeypatch.setenv("ANALYTICS_CACHE_TTL_HOURS", "2")

        settings = Settings()

        assert settings.cleanup_max_workers == 7
        assert settings.analytics_cache_ttl_hours == 2

    def test_unknown_variables_are_ignored(self, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")

        settings = Settings()

        assert "debug" not in Settings.model_fields
        assert not hasattr(settings, "debug")

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            Settings(STORE_BACKEND="sqlite").validate_required_settings()

    def test_memory_backend_rejected_in_production(self):
        settings = Settings(STORE_BACKEND="memory", ENVIRONMENT="production")
        with pytest.raises(ValueError):
            settings.validate_required_settings()

    def test_memory_backend_allowed_in_test(self):
        Settings(STORE_BACKEND="memory", ENVIRONMENT="test").validate_required_settings()
