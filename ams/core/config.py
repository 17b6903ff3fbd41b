"""Application configuration using Pydantic Settings v2.

Loads configuration from environment variables with .env file support.
All settings are validated at startup and available as typed attributes.
"""

from __future__ import annotations

import functools
import json
import re
from typing import Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BACKEND_API_URL = "https://moca.mom/api"


class Settings(BaseSettings):
    """AMS planning service settings.

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
    app_name: str = "AMS Planning Service"
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ── Remote AMS backend ───────────────────────────────────────
    backend_api_url: str = DEFAULT_BACKEND_API_URL
    backend_timeout: float = 30.0
    backend_max_retries: int = 2  # GET requests only

    # ── Submission journal (PostgreSQL) ──────────────────────────
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "ams"
    postgres_user: str = "ams"
    postgres_password: str = "ams_dev_password"
    database_url: str | None = None
    journal_enabled: bool = True
    submission_max_attempts: int = 5

    # ── Service ──────────────────────────────────────────────────
    service_host: str = "0.0.0.0"  # noqa: S104 - intentional for container deployments  # nosec B104
    service_port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173"]

    # ── Session tokens ───────────────────────────────────────────
    # Tokens are issued by the AMS backend. Without a secret the claims are
    # read unverified; the backend still authorizes every forwarded call.
    jwt_secret_key: SecretStr = SecretStr("")
    jwt_algorithm: str = "HS256"
    jwt_department_claims: str = "DeptId,deptId,departmentId,dept_id"

    @property
    def department_claim_names(self) -> list[str]:
        """Claim names checked, in order, for the caller's department id."""
        return [c.strip() for c in self.jwt_department_claims.split(",") if c.strip()]

    @field_validator("backend_api_url", mode="after")
    @classmethod
    def normalize_backend_url(cls, v: str) -> str:
        """Force an absolute backend URL without an explicit :80 on https."""
        url = (v or "").strip()
        if not url or url.startswith("/"):
            return DEFAULT_BACKEND_API_URL
        if url.startswith("https://"):
            url = re.sub(r":80(?=/|$)", "", url)
        if not url.startswith(("http://", "https://")):
            return DEFAULT_BACKEND_API_URL
        return url.rstrip("/")

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
        return ["http://localhost:5173"]

    @model_validator(mode="after")
    def build_database_url(self) -> Settings:
        """Build database_url from components if not set."""
        if not self.database_url:
            self.database_url = (
                f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        return self


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""
    return Settings()
