"""Runtime configuration, read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Calendar dates of sessions are compared in the resort's local timezone
BANQUET_TIMEZONE = os.getenv("BANQUET_TIMEZONE", "Asia/Kolkata")

# Reject candidate batches whose own sessions overlap each other
CHECK_WITHIN_BATCH = _flag("CHECK_WITHIN_BATCH", True)

# Storage-level uniqueness of committed venue slots
SLOT_BACKSTOP_ENABLED = _flag("SLOT_BACKSTOP_ENABLED", True)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class Settings:
    timezone: str = BANQUET_TIMEZONE
    check_within_batch: bool = CHECK_WITHIN_BATCH
    slot_backstop_enabled: bool = SLOT_BACKSTOP_ENABLED
    log_level: str = LOG_LEVEL


settings = Settings()
