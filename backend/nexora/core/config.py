"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

# Public selector env var
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'


# Loads .env during development (no-op when the file is absent)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret. Defaults to a development placeholder.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    REDIS_URL: str | None
        Optional Redis connection string. Required when
        ``TOKEN_STORE_BACKEND`` is ``"redis"``.
    TOKEN_STORE_BACKEND: str
        ``"sql"`` (default), ``"redis"`` or ``"memory"``.
    ACCESS_TOKEN_TTL_MINUTES: int
        Access token validity horizon (30 minutes).
    REFRESH_TOKEN_TTL_DAYS: int
        Refresh token validity horizon (7 days).
    TOKEN_BYTES: int
        Random bytes per opaque token (32 bytes, 256 bits).
    REGISTRATION_MIN_PASSWORD_LENGTH: int
        Minimum password length accepted at self-registration.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    CORS_ORIGINS: str
        Comma-separated list of allowed origins for CORS.
    """

    API_BASE_PREFIX = "/api"

    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Token store
    REDIS_URL = os.getenv("REDIS_URL") or None
    TOKEN_STORE_BACKEND = os.getenv("TOKEN_STORE_BACKEND", "sql").strip().lower()

    # Auth policy
    ACCESS_TOKEN_TTL_MINUTES = env_int("ACCESS_TOKEN_TTL_MINUTES", 30)
    REFRESH_TOKEN_TTL_DAYS = env_int("REFRESH_TOKEN_TTL_DAYS", 7)
    TOKEN_BYTES = env_int("TOKEN_BYTES", 32)
    REGISTRATION_MIN_PASSWORD_LENGTH = env_int("REGISTRATION_MIN_PASSWORD_LENGTH", 6)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging & CORS
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    # Build metadata surfaced by /health
    APP_VERSION = os.getenv("APP_VERSION", "dev")
    APP_COMMIT = os.getenv("APP_COMMIT", "unknown")

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development."""

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    CORS_MAX_AGE = 600  # 10 minutes


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Never talks to Redis; the SQL token store is used.
    - Propagates exceptions so pytest can surface tracebacks directly.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = False
    REDIS_URL = None
    TOKEN_STORE_BACKEND = "sql"
    LOG_LEVEL = "WARNING"
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments."""

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(name: str | None = None) -> type[BaseConfig]:
    """Return the configuration class for ``name`` or ``APP_ENV``.

    Falls back to :class:`DevelopmentConfig` when the name is unset or unknown.
    """
    selected = name if name is not None else os.getenv(ENV_VAR, "development")
    return CONFIG_MAP.get(selected.strip().lower(), DevelopmentConfig)
