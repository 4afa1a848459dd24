"""
StaffPlan Configuration Management

Uses Pydantic Settings for type-safe configuration from environment variables.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # =========================================================================
    # APPLICATION
    # =========================================================================
    APP_NAME: str = "StaffPlan"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "info"
    VERSION: str = "0.1.0"

    # =========================================================================
    # API SERVER
    # =========================================================================
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:3000"

    # =========================================================================
    # DATABASE
    # =========================================================================
    # Overrides the Postgres connection string (e.g. sqlite:///data/dev.db)
    DATABASE_URL: Optional[str] = None
    AUTO_CREATE_SCHEMA: bool = False

    # =========================================================================
    # CAPACITY ENGINE
    # =========================================================================
    DEFAULT_DAILY_CAPACITY_HOURS: float = 40.0 / 7.0
    MAX_ALLOCATION_RANGE_DAYS: int = 1827
    SEVERITY_HIGH_THRESHOLD: float = 1.1
    SEVERITY_CRITICAL_THRESHOLD: float = 1.3
    HIGH_UTILIZATION_WARNING: float = 0.8
    OVERUTILIZED_THRESHOLD: float = 1.0
    UNDERUTILIZED_THRESHOLD: float = 0.5
    AUTO_RESOLVE_REASON: str = "Automatically resolved by conflict resolver"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton instance for easy import
settings = get_settings()
