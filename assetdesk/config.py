"""
Branch Asset & Payables Desk
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for the SQL record store in local dev
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'assetdesk_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_flag(name, default):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy (used by the "sql" record store backend)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = _SQLITE_DEV

    # Record store
    RECORD_STORE = os.getenv("RECORD_STORE", "workbook")        # "workbook" | "sql"
    DATA_DIR = os.getenv("DATA_DIR", os.path.join(basedir, "data"))
    STORE_CACHE_TTL = int(os.getenv("STORE_CACHE_TTL", "300"))  # reference tables
    ASSET_CACHE_TTL = int(os.getenv("ASSET_CACHE_TTL", "30"))   # Assets churn faster

    # Workflow behaviour
    LEGACY_MANAGER_LINKS = _env_flag("LEGACY_MANAGER_LINKS", "true")
    ENFORCE_ROLE_PERMISSIONS = _env_flag("ENFORCE_ROLE_PERMISSIONS", "false")
    SEED_ROLES_ON_STARTUP = True

    # Requests slower than this are logged at WARNING
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1500"))

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    RATELIMIT_ENABLED = False
    # Caching off so tests observe every write immediately
    STORE_CACHE_TTL = 0
    ASSET_CACHE_TTL = 0


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if self.RECORD_STORE == "sql" and not os.getenv("DATABASE_URL"):
            raise RuntimeError("DATABASE_URL environment variable is required for the sql store in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
