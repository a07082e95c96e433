"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env file.
Only process-level knobs live here; rule thresholds are loaded
through crucible.rules.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="CRUCIBLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="crucible", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # Analysis
    parallel_limit: int = Field(default=4, ge=1, le=64, description="Units analyzed concurrently")
    small_unit_threshold: int = Field(
        default=12,
        ge=0,
        description="Units with at most this many declarations run every detector",
    )
    rules_file: str | None = Field(default=None, description="Optional rule configuration YAML")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


# Global settings instance
settings = Settings()
