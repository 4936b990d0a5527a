from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RULES_DIRECTORY = Path(__file__).resolve().parent.parent / "rules" / "data"


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "taxcore"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"

    # Tax-year window. Years outside [MIN_TAX_YEAR, MAX_TAX_YEAR] are rejected
    # before any computation runs.
    MIN_TAX_YEAR: int = 2026
    MAX_TAX_YEAR: int = 2100
    RULES_DIRECTORY: Path = DEFAULT_RULES_DIRECTORY

    # Optimistic-lock retries for withholding credit allocation
    CREDIT_ALLOCATION_MAX_RETRIES: int = 3

    @field_validator("LOG_FORMAT")
    @classmethod
    def _normalise_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in {"plain", "json"}:
            raise ValueError("LOG_FORMAT must be 'plain' or 'json'")
        return v

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        if self.MIN_TAX_YEAR > self.MAX_TAX_YEAR:
            raise ValueError(
                f"MIN_TAX_YEAR ({self.MIN_TAX_YEAR}) must not exceed MAX_TAX_YEAR ({self.MAX_TAX_YEAR})"
            )
        if self.CREDIT_ALLOCATION_MAX_RETRIES < 1:
            raise ValueError("CREDIT_ALLOCATION_MAX_RETRIES must be at least 1")
        if self.ENV.lower() == "prod" and not self.DATABASE_URL:
            raise ValueError("Missing required production settings: DATABASE_URL")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./taxcore_dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
