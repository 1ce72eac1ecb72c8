"""Tests for slidebridge.config module."""

import pytest
from pydantic import ValidationError

from slidebridge.config import ConfigError, Settings


class TestSettings:
    """Tests for the Settings class."""

    def test_default_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that default values are set correctly."""
        monkeypatch.delenv("SLIDESCORE_METADATA_URL", raising=False)

        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
        )

        assert settings.SLIDESCORE_METADATA_URL is None
        assert settings.INLINE_ANSWER_LIMIT == 100_000
        assert settings.UPLOAD_CHUNK_SIZE == 5 * 1024 * 1024
        assert settings.POINT_MARKER_RADIUS == 10
        assert settings.UPLOAD_MAX_CHUNK_ATTEMPTS == 3
        assert settings.LOG_FORMAT == "console"

    def test_env_var_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables override defaults."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("INLINE_ANSWER_LIMIT", "500")
        monkeypatch.setenv("UPLOAD_CHUNK_SIZE", "1024")

        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
        )

        assert settings.LOG_LEVEL == "DEBUG"
        assert settings.INLINE_ANSWER_LIMIT == 500
        assert settings.UPLOAD_CHUNK_SIZE == 1024

    def test_log_level_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that LOG_LEVEL defaults to INFO."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
        )
        assert settings.LOG_LEVEL == "INFO"

    def test_log_format_options(self) -> None:
        """Test that LOG_FORMAT accepts valid options."""
        settings = Settings(
            LOG_FORMAT="json",
            _env_file=None,  # type: ignore[call-arg]
        )
        assert settings.LOG_FORMAT == "json"


class TestRequireMetadataUrl:
    """Tests for the require_metadata_url helper."""

    def test_returns_configured_url(self, test_settings: Settings) -> None:
        """Test that a configured URL is returned unchanged."""
        assert test_settings.require_metadata_url().endswith("SlideScoreMetadata.json")

    def test_missing_url_raises_config_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing URL raises ConfigError naming the env var."""
        monkeypatch.delenv("SLIDESCORE_METADATA_URL", raising=False)
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
        )

        with pytest.raises(ConfigError) as exc_info:
            settings.require_metadata_url()

        assert exc_info.value.env_var == "SLIDESCORE_METADATA_URL"
        assert "SLIDESCORE_METADATA_URL" in str(exc_info.value)

    def test_blank_url_counts_as_missing(self) -> None:
        """Test that whitespace is not accepted as a URL."""
        settings = Settings(
            SLIDESCORE_METADATA_URL="   ",
            _env_file=None,  # type: ignore[call-arg]
        )
        with pytest.raises(ConfigError):
            settings.require_metadata_url()

    def test_rejects_non_metadata_link(self) -> None:
        """Test that a link to another page is refused."""
        settings = Settings(
            SLIDESCORE_METADATA_URL="https://slides.example.org/study/12",
            _env_file=None,  # type: ignore[call-arg]
        )
        with pytest.raises(ConfigError, match="not a slide metadata link"):
            settings.require_metadata_url()


class TestValidation:
    """Tests for value constraints."""

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("UPLOAD_CHUNK_SIZE", 0),
            ("UPLOAD_MAX_CHUNK_ATTEMPTS", 0),
            ("HTTP_TIMEOUT_SECONDS", -1.0),
            ("LOG_FORMAT", "xml"),
        ],
    )
    def test_invalid_values_rejected(self, field: str, value: object) -> None:
        with pytest.raises(ValidationError):
            Settings(**{field: value}, _env_file=None)  # type: ignore[arg-type]
