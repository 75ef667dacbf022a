"""
Configuration for the MediDispatch backend.

Values are read from the environment (optionally via a .env file next to
the package) when the module is imported.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    """Application settings."""

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _get_int("PORT", 8000)
    DEBUG: bool = _get_bool("DEBUG", False)
    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
        if origin.strip()
    ]

    # Persistence. Empty string keeps the entity store purely in memory.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./medidispatch.db")

    # Dispatch rules
    HOLD_DURATION_MINUTES: int = _get_int("HOLD_DURATION_MINUTES", 30)
    EXPIRY_POLL_INTERVAL_SECONDS: int = _get_int("EXPIRY_POLL_INTERVAL_SECONDS", 30)
    MAX_POLL_INTERVAL_SECONDS: int = 60

    # Change notifier
    EVENT_HISTORY_SIZE: int = _get_int("EVENT_HISTORY_SIZE", 1000)
    SUBSCRIPTION_QUEUE_SIZE: int = _get_int("SUBSCRIPTION_QUEUE_SIZE", 1000)

    SEED_DEMO_DATA: bool = _get_bool("SEED_DEMO_DATA", False)

    @classmethod
    def get_poll_interval(cls) -> float:
        """Expiry poll interval in seconds, never longer than one minute."""
        return float(max(1, min(cls.EXPIRY_POLL_INTERVAL_SECONDS, cls.MAX_POLL_INTERVAL_SECONDS)))
