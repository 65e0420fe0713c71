"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Europe/Kyiv", alias="TZ")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="payouts", alias="POSTGRES_DB")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="postgres", alias="POSTGRES_PASSWORD")

    # Full URL override (e.g. sqlite+aiosqlite:// for local runs)
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Monthly payout batch
    payout_batch_concurrency: int = Field(default=4, alias="PAYOUT_BATCH_CONCURRENCY")
    monthly_payout_cron_day: int = Field(default=1, alias="MONTHLY_PAYOUT_CRON_DAY")
    monthly_payout_cron_hour: int = Field(default=0, alias="MONTHLY_PAYOUT_CRON_HOUR")

    @property
    def database_url(self) -> str:
        """Get async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Get sync database URL for migrations."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
