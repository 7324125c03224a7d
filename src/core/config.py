"""Application configuration using Pydantic Settings v2.

Loads configuration from environment variables with .env file support.
All settings are validated at startup and available as typed attributes.
"""

from __future__ import annotations

import functools
import json
from typing import Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LEDGER_BACKENDS = ("http", "memory")


class Settings(BaseSettings):
    """Municipal Registry application settings.

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
    app_name: str = "Municipal Registry"
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ── PostgreSQL ───────────────────────────────────────────────
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "registry"
    postgres_user: str = "registry"
    postgres_password: str = "registry_dev_password"
    database_url: str | None = None
    db_pool_size: int = 20
    db_max_overflow: int = 10

    # ── Backend ──────────────────────────────────────────────────
    backend_host: str = "0.0.0.0"  # noqa: S104 - intentional for container deployments  # nosec B104
    backend_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # ── Rate Limiting ─────────────────────────────────────────────
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60

    # ── Ledger (proof of record) ──────────────────────────────────
    ledger_backend: str = "memory"  # "http" | "memory"
    ledger_url: str = ""
    ledger_api_key: SecretStr = SecretStr("")
    ledger_timeout_seconds: float = 60.0
    ledger_complaints_contract: str = ""
    ledger_interventions_contract: str = ""

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

    @field_validator("ledger_backend", mode="before")
    @classmethod
    def normalize_ledger_backend(cls, v: Any) -> str:
        """Accept the backend name case-insensitively and reject unknown ones."""
        backend = str(v).strip().lower()
        if backend not in LEDGER_BACKENDS:
            raise ValueError(f"ledger_backend must be one of {', '.join(LEDGER_BACKENDS)}, got {v!r}")
        return backend

    @model_validator(mode="after")
    def build_derived_urls(self) -> Settings:
        """Build database_url from components if not set."""
        if not self.database_url:
            self.database_url = (
                f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        return self

    @model_validator(mode="after")
    def check_ledger_endpoint(self) -> Settings:
        """An HTTP ledger backend cannot run without a gateway URL."""
        if self.ledger_backend == "http" and not self.ledger_url:
            raise ValueError("ledger_url is required when ledger_backend is 'http'")
        return self


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""
    return Settings()
