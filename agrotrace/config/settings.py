# agrotrace/config/settings.py

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_name: str = "agrotrace-audit"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False
    version: str = "0.1.0"

    # --- Database ---
    database_url: str = "sqlite+aiosqlite:///./agrotrace.db"
    auto_create_schema: bool = True

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Audit storage and chain ---
    audit_storage: Literal["database", "memory"] = "database"
    audit_chain_scope: Literal["tenant", "global"] = "tenant"
    audit_chain_mode: Literal["all", "critical"] = "all"
    audit_hash_algorithm: str = "sha256"
    audit_append_max_retries: int = Field(5, ge=1)

    # --- Audit dispatch ---
    audit_queue_max_size: int = Field(1000, ge=1)
    audit_overflow_policy: Literal["drop_oldest", "block"] = "drop_oldest"
    audit_enqueue_timeout_seconds: float = Field(2.0, gt=0)
    audit_workers: int = Field(1, ge=1)

    # --- Chain lock ---
    audit_chain_lock_backend: Literal["local", "redis"] = "local"
    audit_chain_lock_ttl_seconds: int = Field(10, ge=1)
    audit_chain_lock_wait_seconds: float = Field(5.0, gt=0)

    # --- Observability ---
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()
