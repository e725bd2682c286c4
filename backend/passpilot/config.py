# backend/passpilot/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # "production" hides error detail from 500 responses and forces secure cookies
    PASSPILOT_ENV = os.environ.get("PASSPILOT_ENV", "development")

    # HMAC key for the session and kiosk cookies
    SECRET_KEY = os.environ.get("SECRET_KEY") or os.environ.get("SESSION_SECRET", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///passpilot.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    AUTH_COOKIE_NAME = "pp_sess"
    KIOSK_COOKIE_NAME = "pp_kiosk"
    SESSION_MAX_AGE_SECONDS = 60 * 60 * 8
    AUTH_COOKIE_SECURE = _env_flag("AUTH_COOKIE_SECURE", PASSPILOT_ENV == "production")

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    INVITE_EXPIRY_MINUTES = int(os.environ.get("INVITE_EXPIRY_MINUTES", "1440"))

    # Fixed-window limits: (max requests, window seconds) per client ip + path
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", True)
    RATELIMIT_LOGIN = (20, 60)
    RATELIMIT_KIOSK_LOGIN = (30, 60)
    RATELIMIT_KIOSK_PASS = (12, 10)
    RATELIMIT_ACTIVATE = (10, 60)

    CORS_ALLOWED_ORIGINS = os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
