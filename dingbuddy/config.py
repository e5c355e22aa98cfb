"""Configuration management from environment variables."""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

from dingbuddy.utils.constants import (
    CALENDAR_TICK_SECONDS,
    DEFAULT_TIMEZONE,
    NOTIFIED_KEYS_DEFAULT,
    REMINDER_TICK_SECONDS,
    SUBSCRIPTION_TICK_SECONDS,
)

# Load .env file if it exists
load_dotenv()


def _first_env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return default


def _bool_env(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # DingTalk (APP_KEY/APP_SECRET are legacy aliases)
    DINGTALK_CLIENT_ID: str = _first_env("DINGTALK_CLIENT_ID", "DINGTALK_APP_KEY")
    DINGTALK_CLIENT_SECRET: str = _first_env("DINGTALK_CLIENT_SECRET", "DINGTALK_APP_SECRET")
    DINGTALK_ROBOT_CODE: str = _first_env("DINGTALK_ROBOT_CODE") or DINGTALK_CLIENT_ID
    DINGTALK_ACCOUNT_ID: str = _first_env("DINGTALK_ACCOUNT_ID", default="default")
    DINGTALK_DEBUG: bool = _bool_env("DINGTALK_DEBUG")

    # Storage
    STATE_DIR: Path = Path(os.getenv("STATE_DIR", "./data"))
    STORAGE_BACKEND: Literal["json", "sqlite"] = os.getenv("STORAGE_BACKEND", "json")  # type: ignore
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/dingbuddy.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Time
    DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)

    # Engine
    REMINDER_TICK_SECONDS: int = int(os.getenv("REMINDER_TICK_SECONDS", str(REMINDER_TICK_SECONDS[0])))
    SUBSCRIPTION_TICK_SECONDS: int = int(
        os.getenv("SUBSCRIPTION_TICK_SECONDS", str(SUBSCRIPTION_TICK_SECONDS[0]))
    )
    CALENDAR_TICK_SECONDS: int = int(os.getenv("CALENDAR_TICK_SECONDS", str(CALENDAR_TICK_SECONDS[0])))
    CALENDAR_WINDOW_HOURS: int = int(os.getenv("CALENDAR_WINDOW_HOURS", "24"))
    CALENDAR_NOTIFIED_KEEP: int = int(os.getenv("CALENDAR_NOTIFIED_KEEP", str(NOTIFIED_KEYS_DEFAULT)))

    # HTTP
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "8"))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.DINGTALK_CLIENT_ID or not cls.DINGTALK_CLIENT_SECRET:
            raise ValueError(
                "DINGTALK_CLIENT_ID and DINGTALK_CLIENT_SECRET environment variables are required"
            )

        if cls.STORAGE_BACKEND not in ("json", "sqlite"):
            raise ValueError("STORAGE_BACKEND must be 'json' or 'sqlite'")

        # Ensure storage directories exist
        cls.STATE_DIR.mkdir(parents=True, exist_ok=True)
        if cls.STORAGE_BACKEND == "sqlite":
            cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
