"""slidebridge configuration using pydantic-settings.

Values come from environment variables or a ``.env`` file in the working
directory. The slide link is optional at load time because the codec
commands never talk to the service; operations that do call
``require_metadata_url``.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from slidebridge.exceptions import SlideBridgeError

_METADATA_MARKERS = ("/i/", "SlideScoreMetadata")


class ConfigError(SlideBridgeError):
    """Raised when an operation needs a setting that is missing or unusable.

    Attributes:
        env_var: Environment variable that supplies the setting.
    """

    def __init__(self, env_var: str, problem: str, hint: str) -> None:
        self.env_var = env_var
        super().__init__(f"{env_var} {problem}. {hint}")


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Slide link: https://host/i/<slide>/<token>/SlideScoreMetadata.json
    SLIDESCORE_METADATA_URL: str | None = None

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["console", "json"] = "console"

    HTTP_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)

    # Encoded answers longer than this many characters use the chunked upload
    INLINE_ANSWER_LIMIT: int = Field(default=100_000, ge=0)

    UPLOAD_CHUNK_SIZE: int = Field(default=5 * 1024 * 1024, gt=0)
    UPLOAD_CHUNK_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)
    UPLOAD_MAX_CHUNK_ATTEMPTS: int = Field(default=3, ge=1)  # per chunk, per upload() call

    POINT_MARKER_RADIUS: int = Field(default=10, gt=0)

    @field_validator("SLIDESCORE_METADATA_URL")
    @classmethod
    def _blank_url_is_unset(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    def require_metadata_url(self) -> str:
        """Return the slide link.

        Raises:
            ConfigError: If SLIDESCORE_METADATA_URL is unset or is not a
                slide metadata link.
        """
        url = self.SLIDESCORE_METADATA_URL
        if url is None:
            raise ConfigError(
                "SLIDESCORE_METADATA_URL",
                "is not set",
                "Pass --url or set it in the environment or .env file.",
            )
        if not all(marker in url for marker in _METADATA_MARKERS):
            raise ConfigError(
                "SLIDESCORE_METADATA_URL",
                "is not a slide metadata link",
                "Copy the link ending in SlideScoreMetadata.json from the study page.",
            )
        return url


settings = Settings()
