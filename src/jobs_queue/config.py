# src/jobs_queue/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole library (normal "settings layer").
- Nothing required at import time; every field has a default.
- Malformed values fall back to defaults instead of failing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "JOBS_QUEUE"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_dir: Path
    log_to_file: bool

    # ---- Scheduler ----
    concurrency_limit: int
    log_events: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "jobs-queue").strip() or "jobs-queue"
        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"
        log_dir = _env_path(_k("LOG_DIR"), Path(".local/jobs_queue"))
        log_to_file = _env_bool(_k("LOG_TO_FILE"), False)

        # A scheduler needs at least one slot.
        concurrency_limit = max(1, _env_int(_k("CONCURRENCY_LIMIT"), 1))
        log_events = _env_bool(_k("LOG_EVENTS"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_dir=log_dir,
            log_to_file=log_to_file,
            concurrency_limit=concurrency_limit,
            log_events=log_events,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
