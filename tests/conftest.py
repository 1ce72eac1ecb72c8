"""Shared pytest fixtures and configuration."""

from collections.abc import Iterator

import pytest

from slidebridge.config import Settings
from slidebridge.utils.logging import clear_correlation_context, configure_logging

SLIDE_URL = "https://slides.example.org/i/4242/tok3n/SlideScoreMetadata.json"


@pytest.fixture(autouse=True)
def reset_logging_context() -> Iterator[None]:
    """Reset correlation context between tests."""
    clear_correlation_context()
    yield
    clear_correlation_context()


@pytest.fixture
def test_settings() -> Settings:
    """Create a Settings instance with test-safe defaults."""
    return Settings(
        SLIDESCORE_METADATA_URL=SLIDE_URL,
        LOG_LEVEL="DEBUG",
        LOG_FORMAT="console",
        HTTP_TIMEOUT_SECONDS=5.0,
        UPLOAD_CHUNK_SIZE=4,
        UPLOAD_CHUNK_TIMEOUT_SECONDS=1.0,
        UPLOAD_MAX_CHUNK_ATTEMPTS=3,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def slide_url() -> str:
    """Slide metadata link used by client tests."""
    return SLIDE_URL


@pytest.fixture
def configure_test_logging() -> Iterator[None]:
    """Configure logging for tests with console output."""
    configure_logging(level="DEBUG", log_format="console")
    yield
