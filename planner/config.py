"""Application configuration using Pydantic Settings.

Environment Variable Strategy:
- Every field has a local default so the service starts without a .env file
- Deployments override through environment variables or .env
"""

from functools import cached_property
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_comma_list(value: str | list[str] | None, default: list[str]) -> list[str]:
    """Parse comma-separated string into list."""
    if value is None:
        return default
    if isinstance(value, list):
        return value
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./planner.db"
    auto_create_schema: bool = True

    # App settings
    environment: str = Field(
        default="development", validation_alias=AliasChoices("ENVIRONMENT", "ENV")
    )
    debug: bool = False

    # CORS origins - stored as string, parsed via property
    # Env format: CORS_ORIGINS="http://localhost:3000,http://localhost:5173"
    cors_origins_str: str | None = Field(default=None, validation_alias="CORS_ORIGINS")

    # Occurrence engine limits
    max_occurrence_window_days: int = Field(
        default=3660,
        validation_alias="MAX_OCCURRENCE_WINDOW_DAYS",
    )

    # Matching
    max_batch_size: int = Field(default=100, validation_alias="MAX_BATCH_SIZE")
    pending_lookback_days: int = Field(default=30, validation_alias="PENDING_LOOKBACK_DAYS")
    matching_config_path: Path = Field(
        default=Path(__file__).resolve().parents[1] / "config" / "matching.yaml",
        validation_alias="MATCHING_CONFIG_PATH",
    )

    @cached_property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from env string or use defaults."""
        return parse_comma_list(
            self.cors_origins_str,
            [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
            ],
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
