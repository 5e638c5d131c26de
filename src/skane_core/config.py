"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _resolve_db_dir() -> Path:
    """Return (and create) the directory that holds the SQLite file."""
    d = Path(os.getenv("SKANE_DATA_DIR", str(_PROJECT_ROOT / "data")))
    d.mkdir(parents=True, exist_ok=True)
    return d


_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{_resolve_db_dir() / 'skane.db'}"


class Settings(BaseSettings):
    """All runtime configuration for the skane core service.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  The scoring tables themselves are not
    settings: they live in the config models of :mod:`skane_core.engine.tuning`
    and are built from these values by the service layer.
    """

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────
    database_url: str = _DEFAULT_DB_URL

    # ── API server ────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = int(os.getenv("PORT", "8000"))

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ── Identity ──────────────────────────────────────────────
    device_id: str = "guest"  # seed identity when no user is signed in

    # ── Scoring behaviour ─────────────────────────────────────
    strict_invariants: bool = False  # raise on index invariant violations (dev)
    action_history_window: int = 3  # anti-repetition window per session
    amplifier_min_dysregulation: float = 0.70
    guest_mode_actions_only: bool = False  # restrict guests to the guest shortlist


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
