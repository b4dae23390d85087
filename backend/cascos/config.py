# backend/cascos/config.py
from __future__ import annotations
import os


def _csv(value: str) -> set[str]:
    return {part.strip() for part in value.split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cascos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cascos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Civil timezone used for every stored timestamp ("YYYY-MM-DD HH:MM:SS", no offset)
    TIMEZONE = os.environ.get("CASCOS_TIMEZONE", "America/Sao_Paulo")

    CORS_ORIGINS = _csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    ))

    # Stock rows are inserted (quantity 0) on startup when missing
    SEED_STOCK_ON_STARTUP = os.environ.get("SEED_STOCK_ON_STARTUP", "1") == "1"

    # Shared UI credential created by `flask system init`
    INITIAL_USER = os.environ.get("INITIAL_USER", "junior")
    INITIAL_PASSWORD = os.environ.get("INITIAL_PASSWORD", "change-me")
