"""
Application configuration using pydantic-settings.
All config is loaded from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Live Room Admission API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Backing store: "redis" in deployments, "memory" for tests and local runs
    STORE_BACKEND: str = "redis"
    STORE_TIMEOUT_S: float = 5.0
    TRANSACTION_MAX_RETRIES: int = 50
    # Jittered exponential backoff between optimistic retries (redis backend)
    TRANSACTION_BACKOFF_BASE_S: float = 0.002
    TRANSACTION_BACKOFF_MAX_S: float = 0.05

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "liveroom:"

    # Catalog and countdown gate timing
    CATALOG_TICK_INTERVAL_S: float = 1.0
    GATE_TICK_INTERVAL_S: float = 1.0
    GATE_RECHECK_TIMEOUT_S: float = 5.0
    GATE_RECHECK_INTERVAL_S: float = 5.0

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
