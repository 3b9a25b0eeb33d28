from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from nexora.models.user import User
from nexora.services._shared.ports.token_store import TokenPair

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class RegisterIn:
    """
    Input DTO for self-registration.

    :param email: Email as typed; normalized by the service.
    :param password: Raw password.
    :param name: Display name.
    """

    email: str
    password: str
    name: str


@dataclass(frozen=True, slots=True)
class LoginIn:
    email: str
    password: str


@dataclass(frozen=True, slots=True)
class ChangePasswordIn:
    current_password: str
    new_password: str


@dataclass(frozen=True, slots=True)
class ProvisionIn:
    """
    Input DTO for administrative account creation.

    :param password: Initial password; generated when ``None``.
    :param role: ``"user"`` or ``"admin"``.
    """

    email: str
    name: str
    password: str | None = None
    role: str = "user"


# --------------------------- Output DTOs ---------------------------------- #


def _utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class UserView:
    """Detached, password-free snapshot of a :class:`User`."""

    id: int
    email: str
    name: str
    avatar: str | None
    role: str
    must_change_password: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_model(cls, user: User) -> UserView:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar=user.avatar,
            role=user.role.value,
            must_change_password=bool(user.force_password_change),
            created_at=_utc(user.created_at),
            updated_at=_utc(user.updated_at),
        )


@dataclass(frozen=True, slots=True)
class AuthSession:
    """User plus the freshly issued pair (login, register, refresh)."""

    user: UserView
    pair: TokenPair


@dataclass(frozen=True, slots=True)
class MeOut:
    """
    Current user and the access expiry of their active pair.

    :param expires_at: ``None`` when no pair is stored for the user.
    """

    user: UserView
    expires_at: datetime | None


@dataclass(frozen=True, slots=True)
class ProvisionOut:
    """
    Provisioned account.

    :param temporary_password: Generated initial password; ``None`` when the
        administrator supplied one.
    """

    user: UserView
    temporary_password: str | None = None
