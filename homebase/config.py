"""
HomeBase Gear Guard — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from homebase/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Remote API: one resolved endpoint, no URL guessing
    API_BASE_URL: str = "http://localhost:3001/api"
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Local fallback store (SQLite file holding the namespaced JSON keys)
    LOCAL_STORE_PATH: str = "data/homebase.db"
    STORAGE_NAMESPACE: str = "homebase"

    # How long a remote failure keeps us on the local store
    AVAILABILITY_DECAY_SECONDS: int = 300

    # Derived-status windows
    EXPIRING_SOON_DAYS: int = 30
    UPCOMING_HORIZON_DAYS: int = 14

    # Telegram (only needed to run the bot)
    TELEGRAM_BOT_TOKEN: str = ""
    ALLOWED_USER_IDS: list[int] = []

    LOG_LEVEL: str = "INFO"

    @field_validator("API_BASE_URL")
    @classmethod
    def check_base_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"API_BASE_URL must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            API_BASE_URL=os.getenv("API_BASE_URL", "http://localhost:3001/api"),
            REQUEST_TIMEOUT_SECONDS=os.getenv("REQUEST_TIMEOUT_SECONDS", "10"),
            LOCAL_STORE_PATH=os.getenv("LOCAL_STORE_PATH", "data/homebase.db"),
            STORAGE_NAMESPACE=os.getenv("STORAGE_NAMESPACE", "homebase"),
            AVAILABILITY_DECAY_SECONDS=os.getenv("AVAILABILITY_DECAY_SECONDS", "300"),
            EXPIRING_SOON_DAYS=os.getenv("EXPIRING_SOON_DAYS", "30"),
            UPCOMING_HORIZON_DAYS=os.getenv("UPCOMING_HORIZON_DAYS", "14"),
            TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton, imported by all other modules as:
#   from homebase.config import settings
settings = _load_settings()
