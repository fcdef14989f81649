# backend/novapos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/novapos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///novapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Checkout defaults (percentages)
    DEFAULT_TAX_RATE_PERCENT = float(os.environ.get("DEFAULT_TAX_RATE_PERCENT", "8"))

    # Audit trail keeps at most this many entries (oldest evicted first)
    AUDIT_LOG_CAP = int(os.environ.get("AUDIT_LOG_CAP", "1000"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "KSh")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
