# backend/treasury/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/treasury.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///treasury.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Close-time reconciliation: |difference| above this is flagged for review (10.00)
    CASH_DISCREPANCY_THRESHOLD_CENTS = int(os.environ.get("CASH_DISCREPANCY_THRESHOLD_CENTS", "1000"))

    # Best-effort audit trail written after each financial commit
    AUDIT_ENABLED = _env_flag("AUDIT_ENABLED", True)
