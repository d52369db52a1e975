# backend/onboarding/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _float_env(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/onboarding.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///onboarding.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Store calls: connection/lock wait bound and retry policy for transient failures
    STORE_TIMEOUT_SECONDS = _float_env("STORE_TIMEOUT_SECONDS", 10.0)
    STORE_RETRY_ATTEMPTS = _int_env("STORE_RETRY_ATTEMPTS", 3)
    STORE_RETRY_BACKOFF = _float_env("STORE_RETRY_BACKOFF", 0.1)

    # Short codes: first code is SHORT_CODE_FLOOR, rendered zero-padded to SHORT_CODE_WIDTH
    SHORT_CODE_FLOOR = _int_env("SHORT_CODE_FLOOR", 3000)
    SHORT_CODE_WIDTH = _int_env("SHORT_CODE_WIDTH", 6)
    SHORT_CODE_MAX_ATTEMPTS = _int_env("SHORT_CODE_MAX_ATTEMPTS", 3)

    # Evidence photos (identity documents, shop front) - path on disk; served at /uploads/
    EVIDENCE_UPLOAD_DIR = os.environ.get("EVIDENCE_UPLOAD_DIR", "uploads")
    EVIDENCE_MAX_BYTES = _int_env("EVIDENCE_MAX_BYTES", 5 * 1024 * 1024)
    EVIDENCE_ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".pdf"}

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    SESSION_ABSOLUTE_HOURS = _int_env("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_HOURS = _int_env("SESSION_IDLE_HOURS", 2)

    # Provisioning export constants
    EXPORT_COUNTRY_CODE = os.environ.get("EXPORT_COUNTRY_CODE", "MRT")
    EXPORT_PHONE_PREFIX = os.environ.get("EXPORT_PHONE_PREFIX", "222")

    ACTIVITY_LOG_ENABLED = True

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }


def engine_options_for(uri: str, timeout: float) -> dict:
    """
    Engine options that bound every store call.

    SQLite: busy timeout for lock waits.
    Others: pool checkout timeout and a pre-ping so dead connections fail fast.
    """
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout}}
    return {"pool_timeout": timeout, "pool_pre_ping": True}
