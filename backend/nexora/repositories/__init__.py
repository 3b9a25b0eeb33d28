"""Repository package exposing persistence-layer access for all domain models."""

from __future__ import annotations

from nexora.repositories.auth_token import AuthTokenRepository
from nexora.repositories.base import BaseRepository
from nexora.repositories.user import UserRepository

__all__ = [
    "AuthTokenRepository",
    "BaseRepository",
    "UserRepository",
]
