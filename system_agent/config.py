"""Application configuration using Pydantic Settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./system_agent.db"

    # Replicate (image generation)
    REPLICATE_API_KEY: Optional[str] = None
    REPLICATE_BASE_URL: str = "https://api.replicate.com/v1"
    IMAGE_DEFAULT_MODEL: str = "google/imagen-4-fast"
    IMAGE_DEFAULT_ASPECT_RATIO: str = "3:4"

    # Deferred action queue tuning
    QUEUE_CONCURRENT_BATCHES: int = 3
    QUEUE_BATCH_SIZE: int = 25
    QUEUE_TIME_LIMIT: int = 60  # Seconds per batch

    # Worker
    WORKER_POLL_INTERVAL: int = 5
    STALE_CLAIM_MAX_AGE: int = 86400  # One day
    STALE_CLAIM_CHECK_INTERVAL: int = 3600

    # Tasks
    TASK_MAX_ATTEMPTS: int = 24

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
