"""Runtime configuration loaded from ``TOOLGATE_*`` environment variables.

Environment variables:
- TOOLGATE_GATEWAY_BASE_URL: tunnel gateway address
- TOOLGATE_HEALTH_TIMEOUT_SECONDS: per-probe bound (default: 3.0)
- TOOLGATE_HEALTH_INTERVAL_SECONDS: polling interval (default: 120.0)
- TOOLGATE_REQUEST_TIMEOUT_SECONDS: discovery/invocation timeout (default: 10.0)
- TOOLGATE_DEFAULT_SERVICE: service used by filesystem helpers (default: "filesystem")
- TOOLGATE_DB_PATH: permission store location (default: ".toolgate/toolgate.db")
- TOOLGATE_LOG_LEVEL: logging level (default: "INFO")
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway access layer settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    gateway_base_url: str = "https://tunneling-service.onrender.com"
    health_timeout_seconds: float = Field(default=3.0, gt=0)
    health_interval_seconds: float = Field(default=120.0, gt=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    default_service: str = "filesystem"
    db_path: Path = Path(".toolgate/toolgate.db")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("gateway_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> Settings:
    return Settings()
