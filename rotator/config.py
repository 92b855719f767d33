"""Configuration and logging setup for Project Rotator."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    base = os.environ.get("XDG_DATA_HOME")
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / "rotator"


class RotatorSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    data_dir: Path = Field(default_factory=_default_data_dir, validation_alias="ROTATOR_DATA_DIR")
    db_name: str = Field(default="rotator.db", validation_alias="ROTATOR_DB_NAME")
    log_level: str = Field(default="INFO", validation_alias="ROTATOR_LOG_LEVEL")
    timezone: str | None = Field(default=None, validation_alias="ROTATOR_TZ")
    allow_multiple: bool = Field(default=False, validation_alias="ROTATOR_ALLOW_MULTIPLE")
    show_floating_timer: bool = Field(default=True, validation_alias="ROTATOR_FLOATING_TIMER")
    overlay_poll_ms: int = Field(default=250, validation_alias="ROTATOR_OVERLAY_POLL_MS")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "ROTATOR_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("db_name")
    @classmethod
    def _validate_db_name(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or "\\" in value:
            raise ValueError("ROTATOR_DB_NAME must be a plain file name")
        return value

    @field_validator("timezone", mode="before")
    @classmethod
    def _validate_timezone(cls, value):
        if value is None or str(value).strip() == "":
            return None
        try:
            ZoneInfo(str(value).strip())
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"ROTATOR_TZ is not a known time zone: {value}") from exc
        return str(value).strip()

    @field_validator("overlay_poll_ms")
    @classmethod
    def _validate_poll(cls, value: int) -> int:
        if value < 50:
            raise ValueError("ROTATOR_OVERLAY_POLL_MS must be >= 50")
        return value

    @property
    def db_path(self) -> Path:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir / self.db_name


@lru_cache(maxsize=1)
def get_settings() -> RotatorSettings:
    """Return cached settings instance."""

    settings = RotatorSettings()
    settings.data_dir = settings.data_dir.expanduser().resolve()
    return settings


def configure_logging(level: str) -> None:
    """Configure root logging for the application."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


__all__ = ["RotatorSettings", "get_settings", "configure_logging"]
