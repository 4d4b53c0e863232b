"""
Startup Backoffice Platform
Configuration classes for the Flask app factory.

Usage:
    app.config.from_object(config[os.getenv("APP_ENV", "development")])

Environment variables:
    DATABASE_URL / TEST_DATABASE_URL   SQLAlchemy URI (postgres:// is accepted)
    SECRET_KEY, JWT_SECRET_KEY         required in production
    REDIS_URL                          notification queue + realtime pub/sub
    REALTIME_BACKEND                   redis | log | memory
    NOTIFICATION_BACKEND               redis | log | memory
    EMPTY_BOARD_PROGRESS               percentage reported for a board with no tasks
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'backoffice_dev.db')}"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


def _database_url(var: str = "DATABASE_URL", fallback: str | None = None) -> str | None:
    """Hosting providers still hand out postgres://; SQLAlchemy 2 only knows postgresql://."""
    raw = os.getenv(var, "")
    if not raw:
        return fallback
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://"):]
    return raw


_POOL = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    """Shared defaults."""

    # Unset in development means a fresh random key per process
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL)

    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # HS256 access tokens minted by the identity service
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 900)

    REALTIME_BACKEND = os.getenv("REALTIME_BACKEND", "redis")
    NOTIFICATION_BACKEND = os.getenv("NOTIFICATION_BACKEND", "redis")
    NOTIFICATION_QUEUE_KEY = os.getenv("NOTIFICATION_QUEUE_KEY", "backoffice:notifications")

    EMPTY_BOARD_PROGRESS = _env_int("EMPTY_BOARD_PROGRESS", 100)

    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", True)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(fallback=_SQLITE_DEV)
    REALTIME_BACKEND = os.getenv("REALTIME_BACKEND", "log")
    NOTIFICATION_BACKEND = os.getenv("NOTIFICATION_BACKEND", "log")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", fallback="sqlite:///:memory:")
    # StaticPool (in-memory SQLite) rejects the sizing arguments
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    REALTIME_BACKEND = "memory"
    NOTIFICATION_BACKEND = "memory"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    _REQUIRED_ENV = ("SECRET_KEY", "JWT_SECRET_KEY")

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        missing = [name for name in self._REQUIRED_ENV if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Missing production environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
