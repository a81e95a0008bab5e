# backend/syncpos/config.py
from __future__ import annotations
import os
from pathlib import Path


def _default_database_uri() -> str:
    # Single-file local store under the user's home, like the desktop installs expect
    data_dir = Path(os.environ.get("SYNCPOS_HOME", Path.home() / ".syncpos"))
    return f"sqlite:///{data_dir / 'syncpos.db'}"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        _default_database_uri(),
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote collection API (PostgREST style)
    SYNCPOS_REMOTE_URL = os.environ.get("SYNCPOS_REMOTE_URL", "")
    SYNCPOS_REMOTE_API_KEY = os.environ.get("SYNCPOS_REMOTE_API_KEY", "")

    # Periodic push cadence
    SYNC_SCHEDULER_ENABLED = _env_bool("SYNC_SCHEDULER_ENABLED", False)
    SYNC_INITIAL_DELAY_SECONDS = int(os.environ.get("SYNC_INITIAL_DELAY_SECONDS", "10"))
    SYNC_INTERVAL_SECONDS = int(os.environ.get("SYNC_INTERVAL_SECONDS", "300"))

    PAYMENT_EPSILON = float(os.environ.get("PAYMENT_EPSILON", "0.001"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Origins of the local UI allowed to call the loopback API
    ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    }
