"""Application configuration using Pydantic Settings v2.

Loads configuration from environment variables with .env file support.
All settings are validated at startup and available as typed attributes.
"""

from __future__ import annotations

import functools
import json
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """TaskRelay application settings.

    Configuration is loaded from environment variables.
    A .env file in the project root is also read if present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────
    app_name: str = "TaskRelay"
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ── PostgreSQL ───────────────────────────────────────────────
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "taskrelay"
    postgres_user: str = "taskrelay"
    postgres_password: str = "taskrelay_dev_password"
    database_url: str | None = None

    # ── Redis ────────────────────────────────────────────────────
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_url: str | None = None

    # ── Backend ──────────────────────────────────────────────────
    backend_host: str = "0.0.0.0"  # noqa: S104 - intentional for container deployments  # nosec B104
    backend_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # ── Task store ───────────────────────────────────────────────
    task_store_backend: Literal["postgres", "memory"] = "postgres"

    # ── Queues ───────────────────────────────────────────────────
    task_queue_name: str = "task-queue"
    results_queue_name: str = "results-queue"
    queue_visibility_timeout: int = Field(default=300, ge=0, le=43200)  # seconds
    queue_message_retention_period: int = Field(default=86400, ge=60, le=1209600)  # seconds

    # ── Processor ────────────────────────────────────────────────
    processor_enabled: bool = True
    processor_poll_interval_ms: int = Field(default=1000, gt=0)
    processor_batch_size: int = Field(default=1, ge=1, le=10)

    # ── Result ingester ──────────────────────────────────────────
    ingester_enabled: bool = True
    ingester_poll_interval_ms: int = Field(default=5000, gt=0)
    ingester_batch_size: int = Field(default=10, ge=1, le=10)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from JSON string or list."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(item) for item in parsed]
            except (json.JSONDecodeError, TypeError):
                return [origin.strip() for origin in v.split(",")]
        if isinstance(v, list):
            return [str(item) for item in v]
        return ["http://localhost:3000"]

    @field_validator("task_queue_name", "results_queue_name")
    @classmethod
    def validate_queue_name(cls, v: str) -> str:
        """Queue names become Redis key segments; keep them non-empty and unpadded."""
        v = v.strip()
        if not v:
            raise ValueError("Queue name is required")
        return v

    @model_validator(mode="after")
    def build_derived_urls(self) -> Settings:
        """Build database_url and redis_url from components if not set."""
        if not self.database_url:
            self.database_url = (
                f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        if not self.redis_url:
            self.redis_url = f"redis://{self.redis_host}:{self.redis_port}/0"
        return self


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""
    return Settings()
