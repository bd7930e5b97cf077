# backend/chairbook/config.py
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

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///chairbook.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tenant resolution: the platform's own domain and hosts that never carry a tenant
    ROOT_DOMAIN = os.environ.get("ROOT_DOMAIN", "chairbook.app")
    NON_TENANT_HOSTS = ("localhost", "127.0.0.1")
    NON_TENANT_HOST_SUFFIXES = (".vercel.app",)

    # Minutes before start_time after which a confirmed booking can no longer be
    # cancelled. Required; 0 switches the guard off for this deployment.
    CANCELLATION_BUFFER_MINUTES = _int_env("CANCELLATION_BUFFER_MINUTES", 120)

    # Session tokens
    ACCESS_TOKEN_TTL_MINUTES = _int_env("ACCESS_TOKEN_TTL_MINUTES", 60)
    ACCESS_REFRESH_THRESHOLD_MINUTES = _int_env("ACCESS_REFRESH_THRESHOLD_MINUTES", 5)
    REFRESH_TOKEN_TTL_DAYS = _int_env("REFRESH_TOKEN_TTL_DAYS", 30)
    # A rotated refresh token presented again this soon is a parallel request, not a replay
    REFRESH_REUSE_GRACE_SECONDS = _int_env("REFRESH_REUSE_GRACE_SECONDS", 30)

    # Identity cookies
    COOKIE_DOMAIN = os.environ.get("COOKIE_DOMAIN") or None
    COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "false").lower() == "true"
    ACCESS_COOKIE_NAME = "cb_access_token"
    REFRESH_COOKIE_NAME = "cb_refresh_token"
    LOGIN_REDIRECT_MARKER_COOKIE = "cb_login_redirect"
    LOGIN_REDIRECT_MARKER_SECONDS = 30

    # Realtime notifier (Redis pub/sub when configured, log-only otherwise)
    REDIS_URL = os.environ.get("REDIS_URL") or None
    NOTIFIER_MAX_WORKERS = _int_env("NOTIFIER_MAX_WORKERS", 4)
    NOTIFIER_SYNCHRONOUS = False

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    )

    # bcrypt cost for passwords and kiosk PINs
    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)
