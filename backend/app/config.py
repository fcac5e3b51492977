# backend/app/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/parish_stock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///parish_stock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger write retries on lock/deadlock failures
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF_SECONDS = float(os.environ.get("STOCK_RETRY_BACKOFF_SECONDS", "0.1"))

    MOVEMENTS_MAX_PAGE_SIZE = int(os.environ.get("MOVEMENTS_MAX_PAGE_SIZE", "200"))

    # Book vs. physical differences below this are treated as counting noise
    INVENTORY_EPSILON = Decimal(os.environ.get("INVENTORY_EPSILON", "0.001"))

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    )
