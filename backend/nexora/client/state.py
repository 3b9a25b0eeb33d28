from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SessionState(str, Enum):
    """Lifecycle states of a :class:`~nexora.client.session.SessionClient`."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    PASSWORD_CHANGE_REQUIRED = "password_change_required"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of a client operation.

    :ivar success: ``True`` when the operation completed.
    :ivar error: Human-readable (French) reason on failure.
    :ivar violations: Unmet password rules, when the failure is a policy one.
    """

    success: bool
    error: str | None = None
    violations: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls) -> AuthResult:
        return cls(success=True)

    @classmethod
    def fail(cls, error: str, violations: list[str] | None = None) -> AuthResult:
        return cls(success=False, error=error, violations=list(violations or []))


class SessionError(Exception):
    """Base class for errors raised by :meth:`SessionClient.request`."""


class NotAuthenticated(SessionError):
    """No credentials are held."""


class PasswordChangeRequired(SessionError):
    """A forced password change must complete before other authenticated calls."""
