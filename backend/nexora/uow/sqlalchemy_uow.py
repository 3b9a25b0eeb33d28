"""
SQLAlchemy implementation of UnitOfWork for Flask.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, text
from sqlalchemy.exc import InvalidRequestError, SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction

from nexora.core.extensions import db
from nexora.repositories import AuthTokenRepository, UserRepository
from nexora.uow.base import UnitOfWork

log = logging.getLogger(__name__)


class SQLAlchemyRepositoryContainer:
    """Provide repository instances that share a SQLAlchemy session."""

    def __init__(self, *, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session=self.session)
        self.auth_tokens = AuthTokenRepository(session=self.session)


class SQLAlchemyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    SQLAlchemy-backed UoW using the Flask-scoped session.

    The same session is shared across all repositories for a consistent transaction.
    """

    def __init__(self) -> None:
        super().__init__(session=db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        # No-op: the session is lazily started on the first statement.
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        else:
            self.rollback()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SQLAlchemyReadOnlyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Read-only Unit of Work backed by the Flask-scoped SQLAlchemy session.

    This UoW:
    - Applies ``SET TRANSACTION READ ONLY`` on PostgreSQL and MySQL/MariaDB
      when it owns the transaction.
    - Blocks ORM flushes carrying pending changes.
    - Always rolls back on exit and disallows ``commit()``.

    *SQLite*: no database-level read-only flag; the flush guard still applies.
    """

    _READONLY_DIALECTS = ("postgresql", "mysql", "mariadb")

    def __init__(self, *, enforce_db_readonly: bool = True) -> None:
        super().__init__(session=db.session)
        self.enforce_db_readonly = enforce_db_readonly
        self._txn_ctx: SessionTransaction | None = None
        self._guard_installed = False

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        """Open (or attach to) a transaction and install the write guard.

        When the session already runs a transaction (autobegin, outer test
        fixture) the scope attaches to it and skips ``SET TRANSACTION``.
        """
        self._txn_ctx = None
        try:
            txn_ctx = self.session.begin()
            txn_ctx.__enter__()
            self._txn_ctx = txn_ctx
        except InvalidRequestError:
            pass

        if self._txn_ctx is not None and self.enforce_db_readonly:
            dialect = self.session.get_bind().dialect.name
            if dialect in self._READONLY_DIALECTS:
                try:
                    self.session.execute(text("SET TRANSACTION READ ONLY"))
                except SQLAlchemyError as exc:
                    log.warning("SET TRANSACTION READ ONLY failed (%s); guard only.", exc)

        event.listen(self.session, "before_flush", self._before_flush)
        self._guard_installed = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """Always remove the guard. Roll back only if we own the transaction."""
        try:
            if self._txn_ctx is not None:
                try:
                    self.session.rollback()
                finally:
                    self._txn_ctx = None
        finally:
            if self._guard_installed:
                event.remove(self.session, "before_flush", self._before_flush)
                self._guard_installed = False

    def commit(self) -> None:
        """
        Disallow commit in read-only Unit of Work.

        :raises RuntimeError: always, to prevent accidental writes.
        """
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()

    @staticmethod
    def _before_flush(session, flush_context, instances) -> None:
        if session.new or session.dirty or session.deleted:
            raise RuntimeError(
                "Read-only UnitOfWork: ORM flush blocked (new/dirty/deleted objects present)."
            )
