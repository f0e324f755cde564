# backend/orion_pos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite by default; point DATABASE_URL at postgresql+psycopg2://... for PostgreSQL
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///orion_pos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Local calendar used for "today/week/month" filters and invoice numbers
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Indian/Antananarivo")

    # Checkout rejects lines that exceed on-hand stock unless this is set
    ALLOW_OVERSELL = _env_bool("ALLOW_OVERSELL", False)

    LOW_STOCK_DEFAULT = int(os.environ.get("LOW_STOCK_DEFAULT", "5"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "8"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma-separated list of frontend origins allowed to call the API
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    )
