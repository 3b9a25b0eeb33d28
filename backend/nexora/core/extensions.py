"""Global Flask extension instances and initialization helpers."""

from __future__ import annotations

import logging

import redis  # type: ignore[import-untyped]
from flask import Flask, current_app
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData

log = logging.getLogger(__name__)

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)
redis_client: redis.Redis | None = None

TOKEN_STORE_KEY = "token_store"
TOKEN_POLICY_KEY = "token_policy"


def init_app(app: Flask) -> None:
    """Initialize SQLAlchemy, migrations, Redis and the token store.

    Parameters
    ----------
    app: flask.Flask
        Application used to bind extension instances. Importing
        :mod:`nexora.models` registers the SQLAlchemy metadata for migrations.

    Raises
    ------
    RuntimeError
        When Redis is configured but unreachable, or the ``redis`` token
        store backend is selected without ``REDIS_URL``.
    ValueError
        When the configured token lifetimes are inconsistent.
    """
    db.init_app(app)

    from nexora import models as _models  # noqa: F401

    migrate.init_app(app, db)

    global redis_client
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        redis_client = None
        app.extensions.pop("redis_client", None)
    else:
        redis_client = redis.Redis.from_url(redis_url)
        try:
            redis_client.ping()
        except RedisError as exc:
            raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
        app.extensions["redis_client"] = redis_client

    from nexora.services.tokens.service import TokenPolicy

    # Rejects a refresh TTL not greater than the access TTL at startup
    app.extensions[TOKEN_POLICY_KEY] = TokenPolicy.from_config(app.config)
    app.extensions[TOKEN_STORE_KEY] = _build_token_store(app)


def _build_token_store(app: Flask):
    """Select the token store adapter named by ``TOKEN_STORE_BACKEND``."""
    backend = str(app.config.get("TOKEN_STORE_BACKEND", "sql")).lower()

    if backend == "redis":
        if redis_client is None:
            raise RuntimeError("TOKEN_STORE_BACKEND=redis requires REDIS_URL.")
        from nexora.infra.redis.redis_token_store import RedisTokenStore

        store = RedisTokenStore(r=redis_client)
    elif backend == "memory":
        from nexora.services._shared.ports.token_store import InMemoryTokenStore

        store = InMemoryTokenStore()
    else:
        from nexora.infra.sqlalchemy.sqlalchemy_token_store import SQLAlchemyTokenStore

        store = SQLAlchemyTokenStore()

    log.info("token_store.selected", extra={"backend": backend})
    return store


def get_redis() -> redis.Redis:
    """Return the initialized Redis client."""
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized. Call init_app() first.")
    return redis_client


def get_token_store():
    """Return the token store bound to the current application."""
    return current_app.extensions[TOKEN_STORE_KEY]
