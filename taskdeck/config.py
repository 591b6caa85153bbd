"""
TaskDeck — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from taskdeck/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/taskdeck.db"

    # Reminder scheduler
    REMINDER_POLL_INTERVAL_MS: int = 60_000     # scan frequency
    REMINDER_DEDUP_WINDOW_MINUTES: int = 5      # suppression window

    # Notification inbox
    NOTIFICATION_PAGE_SIZE: int = 50

    LOG_LEVEL: str = "INFO"

    @field_validator(
        "REMINDER_POLL_INTERVAL_MS",
        "REMINDER_DEDUP_WINDOW_MINUTES",
        "NOTIFICATION_PAGE_SIZE",
        mode="before",
    )
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return level


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/taskdeck.db"),
            REMINDER_POLL_INTERVAL_MS=os.getenv("REMINDER_POLL_INTERVAL_MS", "60000"),
            REMINDER_DEDUP_WINDOW_MINUTES=os.getenv("REMINDER_DEDUP_WINDOW_MINUTES", "5"),
            NOTIFICATION_PAGE_SIZE=os.getenv("NOTIFICATION_PAGE_SIZE", "50"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid TaskDeck configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from taskdeck.config import settings
settings = _load_settings()
