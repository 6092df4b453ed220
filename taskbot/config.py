"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    telegram_bot_token: str = Field(..., alias="TELEGRAM_BOT_TOKEN")
    # Remote extraction is only enabled when a key is present.
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-3.5-turbo", alias="OPENAI_MODEL")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        alias="OPENAI_BASE_URL",
    )
    database_path: Path = Field(default=Path("tasks.db"), alias="DATABASE_PATH")
    batch_debounce_seconds: float = Field(default=5.0, gt=0, alias="BATCH_DEBOUNCE_SECONDS")
    extract_timeout_seconds: float = Field(default=10.0, gt=0, alias="EXTRACT_TIMEOUT_SECONDS")
    group_timeout_seconds: float = Field(default=15.0, gt=0, alias="GROUP_TIMEOUT_SECONDS")
    default_project: str = Field(default="Inbox", min_length=1, alias="DEFAULT_PROJECT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def remote_extraction_enabled(settings: Settings) -> bool:
    """Return True when a language-model key is configured."""
    return bool(settings.openai_api_key.strip())
