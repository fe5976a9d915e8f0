"""Configuration management for API Territoires.

Uses pydantic-settings to load configuration from environment variables.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Nearest .env walking up from the working directory, then the repo root."""
    candidates = [Path.cwd(), *list(Path.cwd().parents)[:4]]
    # backend/src/territoires/config.py -> repository root
    candidates.append(Path(__file__).resolve().parents[3])

    for directory in candidates:
        env_file = directory / ".env"
        if env_file.exists():
            return env_file
    return None


_env_file = _find_env_file()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================
    # Environment
    # =========================
    environment: Literal["development", "staging", "production"] = "development"

    # =========================
    # API Settings
    # =========================
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    cors_origins: str = "*"

    # =========================
    # PostgreSQL
    # =========================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "territoires"
    postgres_user: str = "territoires"
    postgres_password: str = Field(default="", repr=False)

    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Use the in-memory stores instead of PostgreSQL (development/tests)
    use_memory_store: bool = False

    @computed_field
    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL for PostgreSQL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Synchronous database URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================
    # Celery
    # =========================
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # =========================
    # Matching
    # =========================
    match_search_limit: int = 5
    match_high_confidence: float = 0.9
    match_query_max_length: int = 200

    # =========================
    # Batch matching
    # =========================
    batch_max_items: int = 1000
    batch_ttl_hours: int = 24
    batch_concurrency: int = 10
    batch_items_per_second: int = 50
    batch_queue_size: int = 100
    batch_workers: int = 2
    batch_retry_after_seconds: int = 5
    batch_cleanup_interval_seconds: int = 3600
    webhook_timeout_seconds: float = 10.0

    # =========================
    # Rate limiting / API keys
    # =========================
    rate_limit_anonymous_requests: int = 500
    rate_limit_authenticated_requests: int = 5000
    rate_limit_window_seconds: int = 60
    rate_limit_max_violations: int = 20
    rate_limit_block_seconds: int = 15 * 60
    rate_limit_sweep_interval_seconds: int = 5 * 60
    api_key_cache_ttl_seconds: int = 5 * 60
    api_key_prefix: str = "atf_"
    api_key_min_length: int = 20
    api_key_lookup_length: int = 12

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
