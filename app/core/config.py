"""Core application configuration and settings.

Handles environment variables, document store selection and application settings.
"""
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings


# Load environment variables
ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT / ".env", override=True)
load_dotenv(override=True)

STORE_BACKENDS = ("redis", "memory")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Document store
    store_backend: str = Field(default="redis", alias="STORE_BACKEND")

    # Redis Configuration
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_password: Optional[str] = Field(default=None, alias="REDIS_PASSWORD")
    redis_db: int = Field(default=0, alias="REDIS_DB")
    redis_key_prefix: str = Field(default="tracker:", alias="REDIS_KEY_PREFIX")

    # Analytics & maintenance
    analytics_cache_ttl_hours: int = Field(default=24, alias="ANALYTICS_CACHE_TTL_HOURS")
    cleanup_max_workers: int = Field(default=4, ge=1, alias="CLEANUP_MAX_WORKERS")

    # Application Settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # API Settings
    api_prefix: str = Field(default="", alias="API_PREFIX")
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        alias="CORS_ORIGINS"
    )

    class Config:
        case_sensitive = False
        env_file = ".env"
        populate_by_name = True
        extra = "ignore"

    def validate_required_settings(self):
        """Validate that required settings are present."""
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, "
                f"got '{self.store_backend}'."
            )
        if self.environment == "production" and self.store_backend == "memory":
            raise ValueError(
                "STORE_BACKEND=memory is not allowed in production; "
                "responses would be lost on restart."
            )


# Global settings instance
settings = Settings()


# Validate settings on module import (only in non-test environments)
if settings.environment != "test":
    try:
        settings.validate_required_settings()
    except ValueError as e:
        print(f"Configuration Error: {e}")
        # Don't raise in development to allow partial setup
        if settings.environment == "production":
            raise
