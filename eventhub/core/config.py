"""
Application configuration using pydantic-settings.
All environment variables are loaded from .env file with sensible defaults.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "EventHub Membership Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database (SQLite for local dev, PostgreSQL in production)
    DATABASE_URL: str = "sqlite:///./eventhub.db"
    SQL_ECHO: bool = False
    SEED_DEMO_DATA: bool = True

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENABLED: bool = False  # Disable by default for easy local dev
    PRICING_CACHE_TTL: int = 3600

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Membership plans
    DEFAULT_CURRENCY: str = "USD"
    MEMBERSHIP_PRICING: dict[str, Decimal] = {
        "6months": Decimal("299"),
        "1year": Decimal("499"),
        "2years": Decimal("899"),
    }
    RENEWAL_REMINDER_DAYS: int = 30
    EXPIRING_SOON_DAYS: int = 30

    # Events
    UNREGISTER_CUTOFF_HOURS: int = 24

    # Listing & reporting
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100
    DEFAULT_REPORT_WINDOW_DAYS: int = 365
    TRANSACTION_STATS_WINDOW_DAYS: int = 30

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance to avoid re-reading .env on every call."""
    return Settings()
