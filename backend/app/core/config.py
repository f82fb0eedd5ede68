"""
Newsroom Workflow Engine - Configuration Module
===============================================
All configuration is loaded from environment variables (prefix NEWSROOM_)
or a local .env file. No secrets are hardcoded.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    # App
    app_name: str = "Newsroom Workflow Engine"
    app_env: str = "development"
    app_debug: bool = True
    app_secret_key: str = Field(..., min_length=32)
    app_port: int = 8000

    @property
    def secret_key(self) -> str:
        return self.app_secret_key

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "newsroom_db"
    postgres_user: str = "newsroom"
    postgres_password: str = Field(..., min_length=8)
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (work-queue snapshot cache)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    redis_enabled: bool = True

    @property
    def redis_url(self) -> str:
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Notifications (real-time collaborator)
    events_webhook_url: str = ""
    events_webhook_token: str = ""
    notification_timeout_seconds: float = 5.0

    # Workflow
    transition_lock_nowait: bool = True
    work_queue_cache_ttl_seconds: int = 60
    work_queue_due_soon_days: int = 7
    work_queue_list_limit: int = 200

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_prefix = "NEWSROOM_"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
