# backend/estimate_desk/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/estimate_desk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///estimate_desk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session lifetime (see services/session_service.py)
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _int_env("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _int_env("SESSION_IDLE_TIMEOUT_HOURS", 2)

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    DEFAULT_PAGE_SIZE = _int_env("DEFAULT_PAGE_SIZE", 10)
    MAX_PAGE_SIZE = _int_env("MAX_PAGE_SIZE", 100)

    # Used when an estimate is created without valid_till
    ESTIMATE_VALID_DAYS = _int_env("ESTIMATE_VALID_DAYS", 15)

    MAX_USER_TAGS = _int_env("MAX_USER_TAGS", 10)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
        ).split(",")
        if origin.strip()
    }


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    # bcrypt minimum; keeps the suite fast
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "WARNING"
