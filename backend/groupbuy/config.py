# backend/groupbuy/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/groupbuy.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///groupbuy.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma-separated list of browser origins allowed to call the API
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]

    # WhatsApp number that receives group-buy and individual order hand-offs
    ADMIN_CONTACT_NUMBER = os.environ.get("ADMIN_CONTACT_NUMBER", "639154901224")

    # Individual purchases ship in units of up to 4 boxes, PHP 2,600 per unit
    INDIVIDUAL_SHIPPING_FEE_CENTS = _env_int("INDIVIDUAL_SHIPPING_FEE_CENTS", 260_000)
    BOXES_PER_SHIPPING_UNIT = _env_int("BOXES_PER_SHIPPING_UNIT", 4)

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 2)
