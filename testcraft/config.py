"""
TestCraft Repository Hub Scanner
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when no DATABASE_URL is set
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'testcraft_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Base configuration shared across all environments."""

    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Repository hub
    REPOSITORY_HUB_PATH = os.getenv("REPOSITORY_HUB_PATH", os.path.join(basedir, "repository-hub"))
    REPOSITORY_LIST_FILE = os.getenv("REPOSITORY_LIST_FILE", "")
    TEMP_CLONE_MODE = _env_bool("TEMP_CLONE_MODE")
    GIT_BRANCH = os.getenv("GIT_BRANCH") or None

    # Git credentials (SSH key wins over username/password)
    GIT_USERNAME = os.getenv("GIT_USERNAME") or None
    GIT_PASSWORD = os.getenv("GIT_PASSWORD") or None
    GIT_SSH_KEY_PATH = os.getenv("GIT_SSH_KEY_PATH") or None

    # Git network policy
    GIT_TIMEOUT_SECONDS = int(os.getenv("GIT_TIMEOUT_SECONDS", "300"))
    GIT_MAX_RETRIES = int(os.getenv("GIT_MAX_RETRIES", "2"))
    GIT_RETRY_BACKOFF_SECONDS = float(os.getenv("GIT_RETRY_BACKOFF_SECONDS", "5"))

    # Scanner filters, matched against the hub-relative repository path
    SCAN_INCLUDE_PATTERNS = _env_list("SCAN_INCLUDE_PATTERNS")
    SCAN_EXCLUDE_PATTERNS = _env_list("SCAN_EXCLUDE_PATTERNS")

    # Persistence
    PERSIST_BATCH_SIZE = int(os.getenv("PERSIST_BATCH_SIZE", "1000"))

    # Scheduler (daily at 02:00 unless overridden)
    SCAN_SCHEDULER_ENABLED = _env_bool("SCAN_SCHEDULER_ENABLED")
    SCAN_SCHEDULE = {
        "hour": os.getenv("SCAN_SCHEDULE_HOUR", "2"),
        "minute": os.getenv("SCAN_SCHEDULE_MINUTE", "0"),
    }

    # Optional downstream report step, "package.module:function"
    SCAN_REPORT_HOOK = os.getenv("SCAN_REPORT_HOOK") or None


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    SQLALCHEMY_ENGINE_OPTIONS = {} if not _raw_db_url else Config.SQLALCHEMY_ENGINE_OPTIONS


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a single static connection; no pool sizing
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SCAN_SCHEDULER_ENABLED = False
    GIT_MAX_RETRIES = 0
    GIT_RETRY_BACKOFF_SECONDS = 0.0
    PERSIST_BATCH_SIZE = 50


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Heroku-style URLs use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
