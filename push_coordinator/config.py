"""Configuration management for the push coordinator."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REGISTRY_TOKEN = "change-me-in-production"  # noqa: S105


class Settings(BaseSettings):
    """Coordinator settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="PUSH_", extra="ignore"
    )

    # Backend registry
    api_base_url: str = Field(default="http://localhost:8000")
    http_timeout_seconds: float = Field(default=10.0)
    registration_retry_delays: list[float] = Field(default=[1.0, 3.0])

    # Platform
    worker_script_path: str = Field(default="/sw.js")
    worker_script_version: str = Field(default="1")
    step_timeout_seconds: float = Field(default=15.0)
    preferred_channels: list[str] = Field(default=["webpush", "fcm"])

    # Prompting (consumed by the UI layer)
    prompt_cooldown_days: int = Field(default=7)
    prompt_display_delay_seconds: int = Field(default=5)

    # Durable client state
    state_file: Path = Field(default=Path.home() / ".push_coordinator" / "state.json")

    # Local registry service
    vapid_public_key: str | None = Field(default=None)
    registry_tokens: list[str] = Field(default=[DEFAULT_REGISTRY_TOKEN])

    environment: str = Field(default="development")

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production has secure settings."""
        if self.is_production:
            if not self.api_base_url.startswith("https://"):
                raise ValueError("PUSH_API_BASE_URL must use https in production")
            if DEFAULT_REGISTRY_TOKEN in self.registry_tokens:
                raise ValueError("PUSH_REGISTRY_TOKENS must be changed in production")
        return self

    @property
    def worker_script_url(self) -> str:
        """Versioned path the platform loads as the background worker."""
        return f"{self.worker_script_path}?v={self.worker_script_version}"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
