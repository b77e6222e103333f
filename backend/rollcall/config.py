"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - Materializer horizon and scheduler cadence are configuration, not logic

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - Empty telegram_bot_token disables outbound delivery and the scheduler stays usable
      for materialization only
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://rollcall:rollcall@db:5432/rollcall"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Telegram Bot API
    telegram_bot_token: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 10.0
    telegram_max_retries: int = 3
    telegram_base_delay_ms: int = 500
    telegram_max_delay_ms: int = 10_000

    # Scheduler / materializer
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = Field(60, ge=1)
    materializer_horizon_minutes: int = Field(10, ge=1)

    # Domain defaults
    default_timezone: str = "Europe/Helsinki"
    default_event_duration_minutes: int = Field(120, ge=1)
    wizard_timeout_seconds: int = Field(300, ge=1)

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
