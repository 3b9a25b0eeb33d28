"""Generic repository base for SQLAlchemy 2.x.

Persistence-only concerns shared by all repositories:
- Session resolution (injected Unit of Work session or the Flask-scoped one).
- No business logic, no commit/rollback: Services own transactions.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar, cast

from sqlalchemy import select
from sqlalchemy.orm import Session

from nexora.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type


class BaseRepository(Generic[E]):
    """Generic, persistence-only repository for a single aggregate.

    Subclasses MUST define ``model`` with an ``id`` primary key.

    This class NEVER opens, commits or rolls back transactions.
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        """Initialise the repository with an optional SQLAlchemy session.

        :param session: Session shared across the Unit of Work scope. When
            omitted the Flask-scoped ``db.session`` is used.
        :type session: :class:`sqlalchemy.orm.Session` | None
        """
        self._session: Session | None = session

    @property
    def session(self) -> Session:
        """Return the injected session, else the Flask-scoped one."""
        if self._session is not None:
            return self._session
        return cast(Session, db.session)

    def add(self, instance: E) -> E:
        """Stage a new entity and flush to materialize the PK."""
        self.session.add(instance)
        self.flush()
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Retrieve a single entity by primary key."""
        result = self.session.execute(select(self.model).where(self.model.id == entity_id))
        return cast(E | None, result.scalars().first())

    def flush(self) -> None:
        self.session.flush()
