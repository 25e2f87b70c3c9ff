"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "QueueEase"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "queuease"

    # JWT claims issued by the auth collaborator
    SECRET_KEY: str = "queuease-secret-key-change-in-production"
    ALGORITHM: str = "HS256"

    # Queue
    DEFAULT_MAX_TOKENS_MORNING: int = 30
    DEFAULT_MAX_TOKENS_EVENING: int = 30
    AVG_SERVICE_MINUTES: int = 5
    MAX_CONFLICT_RETRIES: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
