"""Persisted token pair: one active row per user."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from nexora.core.extensions import db

from .base import PKMixin, ReprMixin


class AuthToken(PKMixin, ReprMixin, db.Model):
    """
    Active access/refresh token pair of a user.

    The unique constraint on ``user_id`` backs the single-session rule: a
    second concurrent insert for the same user fails at the database instead
    of leaving two live pairs behind.

    Fields
    ------
    user_id : int
        Owner. Deleting the user cascades to the pair.
    access_token : str
        Opaque bearer token for API calls.
    refresh_token : str
        Opaque token accepted only by the refresh endpoint.
    access_expires_at : datetime
        End of the access horizon.
    refresh_expires_at : datetime
        End of the refresh horizon. Always later than ``access_expires_at``.
    created_at : datetime
        Issuance instant.
    """

    __tablename__ = "auth_tokens"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    access_token: Mapped[str] = mapped_column(String(128), nullable=False)
    refresh_token: Mapped[str] = mapped_column(String(128), nullable=False)
    access_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    refresh_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_auth_tokens_user_id"),
        UniqueConstraint("access_token", name="uq_auth_tokens_access_token"),
        UniqueConstraint("refresh_token", name="uq_auth_tokens_refresh_token"),
        Index("ix_auth_tokens_refresh_expires_at", "refresh_expires_at"),
    )
