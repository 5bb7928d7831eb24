"""
Ora Scan Platform
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'ora_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
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

    # Redis (rate limiter storage)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Where the client is sent when the API answers 401
    LOGIN_URL = os.getenv("LOGIN_URL", "/api/auth/login")

    # Speech service credentials handed to the browser SDK
    AZURE_SPEECH_KEY = os.getenv("AZURE_SPEECH_KEY", "")
    AZURE_SPEECH_REGION = os.getenv("AZURE_SPEECH_REGION", "")

    # Interview session cadence (seconds)
    SUMMARY_INTERVAL_SECONDS = _env_int("SUMMARY_INTERVAL_SECONDS", 30)
    INITIAL_SUMMARY_DELAY_SECONDS = _env_int("INITIAL_SUMMARY_DELAY_SECONDS", 10)
    TRANSCRIPT_RESET_WINDOW_SECONDS = _env_int("TRANSCRIPT_RESET_WINDOW_SECONDS", 300)

    # Event bus coalescing windows (seconds)
    LIFECYCLE_EVENT_COALESCE_SECONDS = _env_int("LIFECYCLE_EVENT_COALESCE_SECONDS", 5)
    LIFECYCLE_GENERATION_COALESCE_SECONDS = _env_int("LIFECYCLE_GENERATION_COALESCE_SECONDS", 10)

    # Optional directory of YAML prompt overrides
    PROMPTS_DIR = os.getenv("ORA_PROMPTS_DIR", "")

    # keep | unassign | drop
    DANGLING_ASSIGNMENT_POLICY = os.getenv("DANGLING_ASSIGNMENT_POLICY", "keep")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    # Auth disabled by default in development for convenience
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    # Auth disabled in test environment
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    AZURE_SPEECH_KEY = "test-speech-key"
    AZURE_SPEECH_REGION = "westeurope"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")

    # Override engine options with PostgreSQL statement timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
