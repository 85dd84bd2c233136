"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "POS Ledger Consistency Service"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/pos_ledger"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Balance rebuild
    SCHEDULER_ENABLED: bool = (
        os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    )
    REBUILD_INTERVAL_SECONDS: int = int(
        os.getenv("REBUILD_INTERVAL_SECONDS", "60")
    )
    REBUILD_MAX_WORKERS: int = int(os.getenv("REBUILD_MAX_WORKERS", "1"))

    # Reconciliation and integrity checks
    RECONCILIATION_TOLERANCE: Decimal = Decimal(
        os.getenv("RECONCILIATION_TOLERANCE", "0.01")
    )

    # Logging. The timezone only affects rendered timestamps.
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_JSON: bool = os.getenv("LOG_JSON", "false").lower() == "true"
    LOG_TIMEZONE: str = os.getenv("LOG_TIMEZONE", "UTC")


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
