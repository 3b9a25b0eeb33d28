"""User repository for persistence and authentication utilities."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from nexora.models.user import User
from nexora.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It NEVER handles tokens or sessions, only DB-level user management.
    """

    model = User

    # ---------------------------- Lookup helpers ----------------------------

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :type email: str
        :returns: User instance or ``None`` when not found.
        :rtype: User | None
        """
        stmt = select(User).where(User.email == email.lower().strip())
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def exists_by_email(self, email: str) -> bool:
        """Return ``True`` when a user with the provided email exists."""
        stmt = select(User.id).where(User.email == email.lower().strip())
        return bool(self.session.execute(stmt).first())

    # ---------------------------- Password ops ----------------------------

    def set_password(self, user: User, new_password: str, *, force_change: bool = False) -> None:
        """Hash and assign ``new_password`` and update the forced-change flag.

        :param user: Target user, attached to this repository's session.
        :param new_password: Raw password; the model setter hashes it.
        :param force_change: Value for ``force_password_change``.
        """
        user.password = new_password
        user.force_password_change = force_change
        self.flush()

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the user when ``email``/``password`` match, else ``None``."""
        user = self.get_by_email(email)
        if not user or not user.verify_password(password):
            return None
        return user
