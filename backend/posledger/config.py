# backend/posledger/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # When enabled, value returned or paid beyond a receipt's outstanding
    # balance is kept as supplier credit instead of being floored away.
    TRACK_SUPPLIER_CREDIT = _env_flag("LEDGER_TRACK_SUPPLIER_CREDIT", True)

    COMMIT_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_COMMIT_RETRY_ATTEMPTS", "3"))
