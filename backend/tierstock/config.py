# backend/tierstock/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tierstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tierstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Concurrent ledger writers wait on the sqlite write lock instead of failing fast
    SQLALCHEMY_ENGINE_OPTIONS = (
        {"connect_args": {"timeout": 15}}
        if SQLALCHEMY_DATABASE_URI.startswith("sqlite")
        else {"pool_pre_ping": True}
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Attempts for lock/deadlock retries around ledger writes
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))

    # Courier (NinjaVan-compatible API)
    COURIER_BASE_URL = os.environ.get("COURIER_BASE_URL", "https://api.ninjavan.co")
    COURIER_COUNTRY = os.environ.get("COURIER_COUNTRY", "my")
    COURIER_CLIENT_ID = os.environ.get("COURIER_CLIENT_ID", "")
    COURIER_CLIENT_SECRET = os.environ.get("COURIER_CLIENT_SECRET", "")
    COURIER_TIMEOUT_SECONDS = float(os.environ.get("COURIER_TIMEOUT_SECONDS", "15"))
    COURIER_SENDER = {
        "name": os.environ.get("COURIER_SENDER_NAME", ""),
        "phone_number": os.environ.get("COURIER_SENDER_PHONE", ""),
        "email": os.environ.get("COURIER_SENDER_EMAIL", ""),
        "address1": os.environ.get("COURIER_SENDER_ADDRESS1", ""),
        "address2": os.environ.get("COURIER_SENDER_ADDRESS2", ""),
        "postcode": os.environ.get("COURIER_SENDER_POSTCODE", ""),
        "city": os.environ.get("COURIER_SENDER_CITY", ""),
        "state": os.environ.get("COURIER_SENDER_STATE", ""),
    }

    # Point of sale (StoreHub-compatible API)
    POS_BASE_URL = os.environ.get("POS_BASE_URL", "https://api.storehubhq.com")
    POS_USERNAME = os.environ.get("POS_USERNAME", "")
    POS_PASSWORD = os.environ.get("POS_PASSWORD", "")
    POS_TIMEOUT_SECONDS = float(os.environ.get("POS_TIMEOUT_SECONDS", "30"))
    POS_UTC_OFFSET_HOURS = int(os.environ.get("POS_UTC_OFFSET_HOURS", "8"))
    # Non-physical lines (e.g. the COD fee) never become orders
    POS_EXCLUDED_PRODUCT_NAMES = _csv_env("POS_EXCLUDED_PRODUCT_NAMES", "COD")
