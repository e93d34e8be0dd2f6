# backend/youfin/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


APP_ENV = os.environ.get("APP_ENV", "development")
_IS_DEV = APP_ENV == "development"


class Config:
    APP_ENV = APP_ENV

    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/youfin.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///youfin.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
    CORS_ALLOWED_ORIGINS = {
        FRONTEND_URL,
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    }

    # Development skips the email verification round-trip
    AUTO_VERIFY_ACCOUNTS = _env_flag("AUTO_VERIFY_ACCOUNTS", _IS_DEV)

    # Session cookie / token lifetime
    SESSION_TOKEN_COOKIE = os.environ.get("SESSION_TOKEN_COOKIE", "token")
    SESSION_LIFETIME_DAYS = int(os.environ.get("JWT_COOKIE_EXPIRE", "1") or 1)
    SESSION_IDLE_HOURS = int(os.environ.get("SESSION_IDLE_HOURS", "2"))
    SESSION_TOKEN_COOKIE_SECURE = APP_ENV == "production"

    VERIFICATION_TOKEN_HOURS = 24
    RESET_TOKEN_MINUTES = 60

    # TOTP: 2 steps either side (~60s of clock drift)
    TOTP_VALID_WINDOW = 2
    TOTP_ISSUER = "YouFin"

    # Children spending above this need a parent's approval
    CHILD_APPROVAL_THRESHOLD_CENTS = 2000

    RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", "100"))
    RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))

    # "console" logs outgoing mail, "smtp" delivers it
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "console" if _IS_DEV else "smtp")
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD")
    SMTP_USE_TLS = _env_flag("SMTP_SECURE", True)
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "noreply@youfin.app")

    HUGGINGFACE_API_KEY = os.environ.get("HUGGINGFACE_API_KEY")
    AI_TEXT_MODEL = os.environ.get("AI_TEXT_MODEL", "gpt2")
    AI_CLASSIFICATION_MODEL = os.environ.get("AI_CLASSIFICATION_MODEL", "ProsusAI/finbert")


class TestingConfig(Config):
    APP_ENV = "testing"
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    AUTO_VERIFY_ACCOUNTS = True
    RATE_LIMIT_ENABLED = False
    MAIL_BACKEND = "console"
    HUGGINGFACE_API_KEY = None
    LOG_LEVEL = "WARNING"
