"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Environment
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Australia/Brisbane", alias="TZ")

    # Database
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="swimschool", alias="POSTGRES_DB")
    postgres_user: str = Field(default="swimschool", alias="POSTGRES_USER")
    postgres_password: str = Field(default="swimschool", alias="POSTGRES_PASSWORD")

    # Security
    secret_key: str = Field(alias="SECRET_KEY")
    access_token_expire_minutes: int = Field(
        default=4320, alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )

    # Admin credentials
    admin_email: str = Field(default="admin@swimschool.local", alias="ADMIN_EMAIL")
    admin_password: str = Field(default="admin123", alias="ADMIN_PASSWORD")

    # Coverage engine
    coverage_sweep_interval_minutes: int = Field(
        default=15, alias="COVERAGE_SWEEP_INTERVAL_MINUTES"
    )
    recompute_batch_size: int = Field(default=25, alias="RECOMPUTE_BATCH_SIZE")
    recompute_concurrency: int = Field(default=4, alias="RECOMPUTE_CONCURRENCY")
    makeup_credit_expiry_days: int = Field(
        default=90, alias="MAKEUP_CREDIT_EXPIRY_DAYS"
    )
    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")

    @property
    def database_url(self) -> str:
        """Get async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
