"""Pytest fixtures configuring an isolated transactional database layer.

Each test runs inside an outer transaction against an in-memory SQLite
database; the session under test joins it through SAVEPOINTs so service-level
commits and rollbacks never leak between cases.
"""

from __future__ import annotations

import os

import pytest
from nexora.core.config import TestingConfig
from nexora.core.extensions import db as _db  # Flask-SQLAlchemy instance
from nexora.factory import create_app  # application factory under test
from sqlalchemy import event
from sqlalchemy.orm import scoped_session, sessionmaker


class TestConfig(TestingConfig):
    """Testing configuration for creating the Flask app.

    Notes
    -----
    - Uses an in-memory SQLite database for speed.
    - Keeps the SQL token store; Redis is exercised with fakeredis directly.
    - Short access lifetime defaults stay at the production values so expiry
      tests move the clock with freezegun instead.
    """

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    TOKEN_STORE_BACKEND = "sql"
    REDIS_URL = None
    CORS_ORIGINS = "http://localhost:3000"


@pytest.fixture(scope="session")
def app():
    """Create a Flask application configured for testing.

    Returns
    -------
    flask.Flask
        Application instance with :class:`TestConfig` applied and logging
        noise reduced.
    """
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    app = create_app(TestConfig, instance_relative_config=False)
    app.logger.setLevel("WARNING")
    return app


@pytest.fixture(scope="session")
def db(app):
    """Create database tables once per test session.

    pysqlite defers ``BEGIN`` on its own, which breaks SAVEPOINT handling;
    the listeners below hand transaction control back to SQLAlchemy.

    Yields
    ------
    flask_sqlalchemy.SQLAlchemy
        Database extension bound to the testing application.
    """
    with app.app_context():
        engine = _db.engine
        if engine.dialect.name == "sqlite":

            @event.listens_for(engine, "connect")
            def _disable_pysqlite_begin(dbapi_connection, connection_record):
                dbapi_connection.isolation_level = None

            @event.listens_for(engine, "begin")
            def _emit_begin(conn):
                conn.exec_driver_sql("BEGIN")

        _db.create_all()
    yield _db
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(app, db):
    """Keep a dedicated DBAPI connection open for the whole session."""
    with app.app_context():
        conn = db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def session(app, db, connection):
    """Provide a SQLAlchemy session joined to a per-test outer transaction.

    A fresh application context is pushed per test so ``flask.g`` never
    carries state from one test to the next.

    Yields
    ------
    sqlalchemy.orm.scoping.scoped_session
        Scoped session bound to the shared connection. ``commit()`` only
        releases a SAVEPOINT; the outer transaction is rolled back after
        each test.
    """
    ctx = app.app_context()
    ctx.push()
    top_trans = connection.begin()

    SessionFactory = sessionmaker(
        bind=connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
    )
    scoped = scoped_session(SessionFactory)

    # Monkey-patch db.session so app code uses this scoped session
    original_session = db.session
    db.session.remove()
    db.session = scoped

    try:
        yield scoped
    finally:
        scoped.remove()
        db.session = original_session
        top_trans.rollback()
        ctx.pop()


@pytest.fixture()
def client(app, session):
    """Flask test client sharing the transactional session."""
    return app.test_client()


@pytest.fixture()
def cli_runner(app, session):
    return app.test_cli_runner()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


# -- Hook up Factory Boy to pytest SQLAlchemy session --------------------------
@pytest.fixture(autouse=True)
def _factories_session(request):
    """Wire Factory Boy's session helper to the transactional session fixture.

    Pure unit tests (no ``session`` fixture) skip the database entirely.
    """
    from tests.factories import SQLAlchemySession

    if "session" not in request.fixturenames:
        SQLAlchemySession.set(None)
        yield
        return
    SQLAlchemySession.set(request.getfixturevalue("session"))
    yield
    SQLAlchemySession.set(None)
