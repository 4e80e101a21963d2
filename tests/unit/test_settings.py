"""
Unit tests for Settings classes.

Tests cover:
- Section defaults and env prefixes
- Validation constraints
- Production settings validation
- Settings caching behavior
"""

import pytest
from pydantic import ValidationError

from formzilla.config.settings import (
    Environment,
    PDFSettings,
    ReviewSettings,
    Settings,
    StorageSettings,
    VisionSettings,
    get_settings,
)


STRONG_SECRET = "Zq8!vR3#pL6@tY1$wN4%kM7^hJ2&bX5*"


class TestVisionSettings:

    def test_default_values(self) -> None:
        settings = VisionSettings()

        assert settings.model == "gemini-2.0-flash"
        assert settings.temperature == 0.0
        assert settings.timeout == 120
        assert "generativelanguage.googleapis.com" in str(settings.base_url)

    def test_env_prefix_loading(self, monkeypatch) -> None:
        monkeypatch.setenv("VISION_MODEL", "local-vlm")
        monkeypatch.setenv("VISION_API_KEY", "abc")
        monkeypatch.setenv("VISION_TIMEOUT", "30")

        settings = VisionSettings()

        assert settings.model == "local-vlm"
        assert settings.timeout == 30
        assert settings.is_configured is True

    def test_not_configured_without_key(self) -> None:
        assert VisionSettings().is_configured is False

    def test_timeout_bounds(self) -> None:
        with pytest.raises(ValidationError):
            VisionSettings(timeout=0)


class TestPDFSettings:

    def test_defaults(self) -> None:
        settings = PDFSettings()
        assert settings.render_width == 1240
        assert settings.max_file_size_bytes == 10 * 1024 * 1024

    def test_render_width_bounds(self) -> None:
        with pytest.raises(ValidationError):
            PDFSettings(render_width=50)


class TestReviewSettings:

    def test_polling_disabled_in_tests(self) -> None:
        assert ReviewSettings().poll_interval_ms == 0

    def test_default_interval(self, monkeypatch) -> None:
        monkeypatch.delenv("REVIEW_POLL_INTERVAL_MS")
        assert ReviewSettings().poll_interval_ms == 1000


class TestStorageSettings:

    def test_creates_data_dir(self, tmp_path) -> None:
        settings = StorageSettings(data_dir=str(tmp_path / "new"))

        assert settings.data_dir.is_dir()
        assert settings.documents_dir == tmp_path / "new" / "documents"
        assert settings.profiles_dir == tmp_path / "new" / "profiles"


class TestSettings:

    def test_sections_present(self) -> None:
        settings = Settings()

        assert settings.app_name == "formzilla"
        assert settings.app_env == Environment.TESTING
        assert settings.is_testing

    def test_production_rejects_weak_secret(self, monkeypatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "change-this-secret-key-in-production")
        monkeypatch.setenv("VISION_API_KEY", "abc")

        with pytest.raises(ValidationError, match="weak"):
            Settings(app_env=Environment.PRODUCTION)

    def test_production_requires_vision_key(self, monkeypatch) -> None:
        monkeypatch.setenv("SECRET_KEY", STRONG_SECRET)

        with pytest.raises(ValidationError, match="VISION_API_KEY"):
            Settings(app_env=Environment.PRODUCTION)

    def test_production_accepts_strong_config(self, monkeypatch) -> None:
        monkeypatch.setenv("SECRET_KEY", STRONG_SECRET)
        monkeypatch.setenv("VISION_API_KEY", "abc")

        settings = Settings(app_env=Environment.PRODUCTION)

        assert settings.is_production


class TestGetSettings:

    def test_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_cache_clear_reloads(self, monkeypatch) -> None:
        first = get_settings()
        monkeypatch.setenv("VISION_MODEL", "other-model")
        get_settings.cache_clear()

        assert get_settings() is not first
        assert get_settings().vision.model == "other-model"
