"""Application settings (env/.env)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


class Settings(BaseSettings):
    """Settings for the iTwin Storage API client and the sample workflow."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Both may be left unset; the CLI prompts for whatever is missing.
    itwin_token: str | None = Field(default=None, alias="ITWIN_TOKEN")
    itwin_project_id: str | None = Field(default=None, alias="ITWIN_PROJECT_ID")

    api_base_url: AnyHttpUrl = Field(
        default="https://api.bentley.com",
        alias="ITWIN_API_BASE_URL",
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        alias="HTTP_TIMEOUT_SECONDS",
        gt=0,
    )
    http_max_retries: int = Field(default=3, alias="HTTP_MAX_RETRIES", ge=0)
    http_retry_backoff_seconds: float = Field(
        default=1.0,
        alias="HTTP_RETRY_BACKOFF_SECONDS",
        ge=0,
    )

    download_dir: str = Field(default=".", alias="DOWNLOAD_DIR")
    log_level: LogLevel = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value
