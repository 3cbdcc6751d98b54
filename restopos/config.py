"""Runtime configuration, read from the environment."""

import os


def _flag(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///restopos.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" uses the shared database, "memory" keeps everything in this process.
    POS_REPOSITORY = os.getenv("POS_REPOSITORY", "sql")

    POS_SYNC_ENABLED = _flag("POS_SYNC_ENABLED", True)
    POS_SYNC_INTERVAL = float(os.getenv("POS_SYNC_INTERVAL", "5"))

    PRINT_ENABLED = _flag("PRINT_ENABLED", False)
    PRINT_RELAY_URL = os.getenv("PRINT_RELAY_URL", "http://localhost:3001")
    PRINT_TIMEOUT = float(os.getenv("PRINT_TIMEOUT", "3"))

    # Business-rule guards.
    POS_ALLOW_NEGATIVE_TOTALS = _flag("POS_ALLOW_NEGATIVE_TOTALS", True)
    POS_SINGLE_OPEN_REGISTER = _flag("POS_SINGLE_OPEN_REGISTER", True)
    POS_AUTO_RELEASE_TABLES = _flag("POS_AUTO_RELEASE_TABLES", True)

    SOCKETIO_ASYNC_MODE = os.getenv("SOCKETIO_ASYNC_MODE", "eventlet")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", "5013"))
