"""Application settings.

All configuration is sourced from environment variables (and optionally `.env`).
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed environment-backed settings for rcaflow."""

    model_config = SettingsConfigDict(
        env_prefix="RCAFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Workflow graph limits
    max_nodes: int = Field(default=50, validation_alias=AliasChoices("RCAFLOW_MAX_NODES", "MAX_NODES"))
    max_depth: int = Field(default=20, validation_alias=AliasChoices("RCAFLOW_MAX_DEPTH", "MAX_DEPTH"))
    max_steps: int = 50

    # Node policies
    min_window_minutes: int = 30

    # Query collaborator
    query_timeout_ms: int = Field(
        default=5000,
        validation_alias=AliasChoices("RCAFLOW_QUERY_TIMEOUT_MS", "ENGINE_QUERY_TIMEOUT_MS"),
    )
    pool_size: int = 10
    tenant_db_template: str = "data/tenants/{tenant_id}.sqlite"

    # Workflow store
    workflow_db_path: str = "data/workflows.sqlite"

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # HTTP API
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=3000, validation_alias=AliasChoices("RCAFLOW_API_PORT", "PORT"))
    api_rate_limit: str = "60 per minute"
    rate_limit_enabled: bool = True
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
