"""Configuration management for the productivity backend using Pydantic Settings."""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class TecsupSettings(BaseSettings):
    """Tecsup (Canvas LMS) feed settings."""

    model_config = SettingsConfigDict(env_prefix="TECSUP_", env_file=".env", extra="ignore")

    base_url: str = "https://tecsup.instructure.com/api/v1"
    timeout_seconds: float = 30.0
    max_concurrency: int = 4  # courses fetched in parallel
    per_page: int = 100


class DatabaseSettings(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    database_url: str = Field(default="sqlite:///./productivity.db", alias="DATABASE_URL")
    echo: bool = Field(default=False, alias="DATABASE_ECHO")


class OpenRouterSettings(BaseSettings):
    """OpenRouter API settings for the assistant."""

    model_config = SettingsConfigDict(env_prefix="OPENROUTER_", env_file=".env", extra="ignore")

    api_key: SecretStr = SecretStr("")
    model: str = "google/gemini-2.0-flash-001"
    base_url: str = "https://openrouter.ai/api/v1"


class SchedulerSettings(BaseSettings):
    """Nightly snapshot and periodic refresh settings."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", env_file=".env", extra="ignore")

    snapshot_hour: int = 0
    snapshot_minute: int = 5
    sync_interval_minutes: int = 0  # 0 disables periodic refresh


class Settings(BaseSettings):
    """Main settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # General
    environment: Literal["development", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    timezone: str = "America/Lima"

    # Sub-settings
    tecsup: TecsupSettings = Field(default_factory=TecsupSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    openrouter: OpenRouterSettings = Field(default_factory=OpenRouterSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)


# Global settings instance
settings = Settings()
