"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Transit Realtime Feed Core"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["auto", "console", "json"] = "auto"
    decoder_log_level: Optional[str] = None
    validation_log_level: Optional[str] = None
    merge_log_level: Optional[str] = None

    # Text resolution
    default_language: str = Field(
        default="en",
        validation_alias=AliasChoices("DEFAULT_LANGUAGE", "GTFS_RT_DEFAULT_LANGUAGE"),
    )

    # Decoding
    enforce_required_fields: bool = False
    max_message_depth: int = Field(default=100, ge=1, le=1000)
    max_feed_bytes: int = Field(default=16 * 1024 * 1024, ge=1)

    # Merge engine
    differential_mode: Literal["experimental", "reject"] = Field(
        default="experimental",
        validation_alias=AliasChoices("DIFFERENTIAL_MODE", "GTFS_RT_DIFFERENTIAL_MODE"),
    )

    # Feed freshness
    stale_feed_threshold_sec: int = 120

    def missing_required_env(self) -> list[str]:
        """Return required environment variables that are missing or empty."""
        missing: list[str] = []

        if not self.default_language:
            missing.append("DEFAULT_LANGUAGE")

        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
