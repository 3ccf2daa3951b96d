"""
Engine-wide settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.

Per-model archive options live in `archivable.config.options`; this module
only covers process-level concerns (store URLs, logging, pool sizing).
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Archivable settings with defaults for development."""

    # Named archive stores, e.g. ARCHIVABLE_ARCHIVE_STORES='{"cold": "postgresql+psycopg://..."}'
    archive_stores: dict[str, str] = Field(default_factory=dict)

    # Environment
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Engines created for archive stores
    sql_echo: bool = False
    store_pool_size: int = 5
    store_max_overflow: int = 10
    store_pool_recycle: int = 1800  # seconds
    store_connect_timeout: int = 10  # seconds, postgres only

    model_config = {
        "env_prefix": "ARCHIVABLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
