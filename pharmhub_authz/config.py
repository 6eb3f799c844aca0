"""
Kernel configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Authorization kernel settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./pharmhub_authz.db"

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    project_name: str = "Pharmacy Hub Authorization Kernel"
    version: str = "1.0.0"

    # Effective permission cache
    permission_cache_enabled: bool = True
    permission_cache_ttl_seconds: int = 300
    permission_cache_max_entries: int = 10_000

    # Audit
    audit_access_decisions: bool = False  # log every validate_access call to event_logs

    # Key for pg_advisory_xact_lock around hierarchy mutation (PostgreSQL only)
    hierarchy_lock_key: int = 7_340_101


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
