# backend/paydesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/paydesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///paydesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Display only; amounts are always stored in cents
    CURRENCY_SYMBOL = os.environ.get("PAYDESK_CURRENCY_SYMBOL", "₱")

    # How many times a pending stock effect is retried inside one reconcile pass
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("PAYDESK_STOCK_RETRY_ATTEMPTS", "3"))
