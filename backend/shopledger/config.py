# backend/shopledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Phone number that signs up as the auto-approved admin Owner
    ADMIN_PHONE = os.environ.get("ADMIN_PHONE", "9999999999")

    # Privileged credential for administrative calls (X-Service-Key header).
    # Empty string disables the privileged path entirely.
    SERVICE_KEY = os.environ.get("SERVICE_KEY", "")

    RECENT_SALES_LIMIT = int(os.environ.get("RECENT_SALES_LIMIT", "50"))
    CHANGE_FEED_PAGE_SIZE = int(os.environ.get("CHANGE_FEED_PAGE_SIZE", "200"))
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₹")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # bcrypt work factor for PIN hashes (tests lower this)
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
