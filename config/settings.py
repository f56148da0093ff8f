"""
Configuration settings for the Bulk Operation Orchestrator.
All deployment-specific values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Bulk Operation Orchestrator"
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")

    # Server
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")

    # Database (PostgreSQL) - only used when bulk_record_store == "sql"
    database_url: str = Field(default="", env="DATABASE_URL")
    db_pool_size: int = Field(default=5, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, env="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=3600, env="DB_POOL_RECYCLE")

    # Redis (progress mirror) - empty disables it
    redis_url: str = Field(default="", env="REDIS_URL")

    # Scheduler
    timezone: str = Field(default="UTC", env="TIMEZONE")

    # Bulk operations
    bulk_max_targets: int = Field(default=1000, env="BULK_MAX_TARGETS")
    bulk_concurrency: int = Field(default=5, env="BULK_CONCURRENCY")
    bulk_item_timeout_seconds: float = Field(default=30.0, env="BULK_ITEM_TIMEOUT_SECONDS")
    bulk_conflict_retries: int = Field(default=2, env="BULK_CONFLICT_RETRIES")
    bulk_conflict_retry_delay: float = Field(default=0.1, env="BULK_CONFLICT_RETRY_DELAY")
    bulk_retention_hours: int = Field(default=48, env="BULK_RETENTION_HOURS")
    bulk_purge_interval_minutes: int = Field(default=30, env="BULK_PURGE_INTERVAL_MINUTES")
    bulk_record_store: str = Field(default="memory", env="BULK_RECORD_STORE")  # memory | sql

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
