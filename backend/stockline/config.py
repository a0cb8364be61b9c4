# backend/stockline/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockline.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockline.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Retries for transient lock/deadlock failures (never for domain errors)
    STOCKLINE_RETRY_ATTEMPTS = int(os.environ.get("STOCKLINE_RETRY_ATTEMPTS", "3"))

    STOCKLINE_DEFAULT_PAGE_SIZE = int(os.environ.get("STOCKLINE_DEFAULT_PAGE_SIZE", "10"))
    STOCKLINE_MAX_PAGE_SIZE = int(os.environ.get("STOCKLINE_MAX_PAGE_SIZE", "100"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
