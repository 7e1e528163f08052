# backend/selfcheckout/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/selfcheckout.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///selfcheckout.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Kiosk/admin frontends allowed to call the API from a browser
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]

    # Storage transaction retry loop (optimistic concurrency)
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))
    SQLITE_IMMEDIATE_TRANSACTIONS = _env_bool("SQLITE_IMMEDIATE_TRANSACTIONS", True)

    # Max rows fetched per legacy lookup rule when resolving inventory records
    INVENTORY_MATCH_LIMIT = int(os.environ.get("INVENTORY_MATCH_LIMIT", "25"))

    # 16 bytes -> 32 hex chars
    RECEIPT_TOKEN_BYTES = int(os.environ.get("RECEIPT_TOKEN_BYTES", "16"))

    # purchase.created outbox delivery
    PURCHASE_EVENT_MAX_ATTEMPTS = int(os.environ.get("PURCHASE_EVENT_MAX_ATTEMPTS", "5"))
    PURCHASE_EVENT_BATCH_SIZE = int(os.environ.get("PURCHASE_EVENT_BATCH_SIZE", "50"))

    # In-process gateway that reports every registered payment as paid
    SIMULATED_PAYMENTS_ENABLED = _env_bool("SIMULATED_PAYMENTS_ENABLED", False)
