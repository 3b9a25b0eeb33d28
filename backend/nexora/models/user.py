"""User model: the credential store of the application."""

from __future__ import annotations

import enum
from typing import Any

from sqlalchemy import Boolean, Enum, Index, String, UniqueConstraint, false
from sqlalchemy.orm import Mapped, mapped_column, validates

from nexora.core.extensions import db
from nexora.services._shared.policies.password import hash_password, verify_password

from .base import PKMixin, ReprMixin, TimestampMixin


class UserRole(str, enum.Enum):
    """Roles recognised by the authorization checks."""

    ADMIN = "admin"
    USER = "user"


class User(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Authentication identity.

    Fields
    ------
    email : str
        Login email. Stored normalized (lowercase, trimmed) so lookups are
        case-insensitive.
    password_hash : str
        Salted scrypt digest (write-only setter via ``password``).
    name : str
        Display name.
    avatar : str | None
        Optional avatar URL or initials.
    role : UserRole
        ``admin`` or ``user``.
    force_password_change : bool
        Set for administratively provisioned accounts until the holder picks
        a password of their own.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=UserRole.USER,
    )
    force_password_change: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_email", "email"),
    )

    # -------------------- Password API --------------------
    @property
    def password(self) -> Any:  # pragma: no cover - explicit write-only contract
        """
        Disallow reading passwords.

        :raises AttributeError: Always, to ensure password is write-only.
        """
        raise AttributeError("Password is write-only.")

    @password.setter
    def password(self, raw: str) -> None:
        """
        Hash and set the password.

        :param raw: Plain text password to hash.
        :type raw: str
        """
        if not isinstance(raw, str) or not raw:
            raise ValueError("Password must be a non-empty string.")
        self.password_hash = hash_password(raw)

    def verify_password(self, raw: str) -> bool:
        """
        Verify a password against the stored hash.

        :param raw: Plain text password candidate.
        :type raw: str
        :returns: ``True`` if it matches; otherwise ``False``.
        :rtype: bool
        """
        if not self.password_hash:
            return False
        return verify_password(self.password_hash, raw)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    # -------------------- Validators --------------------
    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Normalize email to its lookup form.

        :raises ValueError: If email is missing.
        """
        if not value or not isinstance(value, str):
            raise ValueError("Email is required.")
        return value.strip().lower()

    @validates("name")
    def _normalize_name(self, key: str, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Name is required.")
        return value.strip()
