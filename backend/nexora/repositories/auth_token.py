"""Repository for persisted token pairs."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from sqlalchemy import delete, select

from nexora.models.auth_token import AuthToken
from nexora.repositories.base import BaseRepository


class AuthTokenRepository(BaseRepository[AuthToken]):
    """Persistence-only access to ``auth_tokens``; transactions stay with the caller."""

    model = AuthToken

    def get_by_access(self, access_token: str) -> AuthToken | None:
        stmt = select(AuthToken).where(AuthToken.access_token == access_token)
        return cast(AuthToken | None, self.session.execute(stmt).scalars().first())

    def get_by_refresh(self, refresh_token: str) -> AuthToken | None:
        stmt = select(AuthToken).where(AuthToken.refresh_token == refresh_token)
        return cast(AuthToken | None, self.session.execute(stmt).scalars().first())

    def get_by_user(self, user_id: int) -> AuthToken | None:
        stmt = select(AuthToken).where(AuthToken.user_id == user_id)
        return cast(AuthToken | None, self.session.execute(stmt).scalars().first())

    def delete_for_user(self, user_id: int) -> int:
        """Bulk-delete the rows of ``user_id``. :returns: affected row count."""
        result = self.session.execute(
            delete(AuthToken)
            .where(AuthToken.user_id == user_id)
            .execution_options(synchronize_session="evaluate")
        )
        return int(result.rowcount or 0)

    def consume_refresh(self, row_id: int, refresh_token: str) -> bool:
        """
        Conditionally delete row ``row_id`` if it still holds ``refresh_token``.

        The ``rowcount`` tells whether this caller won the rotation: a
        concurrent consumer that deleted the row first leaves zero rows here.
        """
        result = self.session.execute(
            delete(AuthToken)
            .where(AuthToken.id == row_id, AuthToken.refresh_token == refresh_token)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def delete_expired(self, now: datetime) -> int:
        """Bulk-delete rows whose refresh horizon is behind ``now``."""
        result = self.session.execute(
            delete(AuthToken)
            .where(AuthToken.refresh_expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)
