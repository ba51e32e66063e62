"""Centralized settings for the repo."""
# ruff: noqa: I001
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parents[1]
_ROOT_ENV_FILE = _REPO_ROOT / ".env"


class Settings(BaseSettings):
    """
    Centralized configuration for the API, the alerting loop and the helper tools.

    Values come from environment variables (and optionally a .env file).
    """

    model_config = SettingsConfigDict(
        # Always load the root .env for local runs, regardless of current working directory.
        env_file=str(_ROOT_ENV_FILE),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # General
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # API
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    API_PREFIX: str = ""
    CORS_ORIGINS: str = "*"
    API_BASE_URL: str = "http://localhost:5000"

    # Store
    DB_FILE: str = str(_REPO_ROOT / "data" / "db.json")

    # Mail transport
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: str | None = None
    SMTP_PASS: str | None = None
    SMTP_TIMEOUT_SECONDS: float = 10.0

    # Alerts
    ALERT_EMAIL_TO: str | None = None
    ALERT_EMAIL_FROM: str | None = None
    ABNORMAL_ALERT_MIN_GAP_MINUTES: float = 30.0
    MAINTENANCE_LOOKAHEAD_DAYS: float = 7.0
    MAINTENANCE_CHECK_INTERVAL_SECONDS: float = 60.0

    # Simulated sensor feeder
    SIMULATOR_INTERVAL_SECONDS: float = 5.0

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
