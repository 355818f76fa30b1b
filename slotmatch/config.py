"""
SlotMatch — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from slotmatch/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram (notification delivery + job queue)
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/slotmatch.db"

    # Clock
    TIMEZONE: str = "Asia/Jerusalem"

    # Waitlist offers
    WAITLIST_OFFER_EXPIRY_MINUTES: int = 30

    # Batch workers
    PROCESSOR_RUN_HOUR: int = 6
    SWEEP_INTERVAL_SECONDS: int = 60

    # Recurring stats: savings shown to customers
    RECURRING_DISCOUNT_RATE: float = 0.1
    AVERAGE_BOOKING_PRICE: float = 100.0

    @field_validator(
        "WAITLIST_OFFER_EXPIRY_MINUTES",
        "PROCESSOR_RUN_HOUR",
        "SWEEP_INTERVAL_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("PROCESSOR_RUN_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"PROCESSOR_RUN_HOUR out of range: {v}")
        return v

    @field_validator("RECURRING_DISCOUNT_RATE", "AVERAGE_BOOKING_PRICE", mode="before")
    @classmethod
    def parse_float(cls, v: str | float) -> float:
        return float(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/slotmatch.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Jerusalem"),
        WAITLIST_OFFER_EXPIRY_MINUTES=os.getenv("WAITLIST_OFFER_EXPIRY_MINUTES", "30"),
        PROCESSOR_RUN_HOUR=os.getenv("PROCESSOR_RUN_HOUR", "6"),
        SWEEP_INTERVAL_SECONDS=os.getenv("SWEEP_INTERVAL_SECONDS", "60"),
        RECURRING_DISCOUNT_RATE=os.getenv("RECURRING_DISCOUNT_RATE", "0.1"),
        AVERAGE_BOOKING_PRICE=os.getenv("AVERAGE_BOOKING_PRICE", "100"),
    )


# Singleton — imported by all other modules as:
#   from slotmatch.config import settings
settings = _load_settings()
