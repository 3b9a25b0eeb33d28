"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic**: they never import Flask or
HTTP helpers. Each carries the user-facing message and a stable ``code``;
the translation to RFC 7807 responses happens in
``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    Parameters
    ----------
    exc : IntegrityError
        The exception raised by SQLAlchemy during flush/commit.
    constraint_name : str
        The name of the database constraint to match (e.g. ``uq_users_email``).

    Returns
    -------
    bool
        True if the driver message names the constraint. SQLite reports the
        column instead (``users.email``), which callers may pass as well.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint_name.lower() in message


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    :ivar message: Human-readable (French) message safe for clients.
    :ivar code: Stable machine code.
    """

    code = "service_error"
    default_message = "Erreur interne"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Input rejected before any state change."""

    code = "validation_error"
    default_message = "Donnees invalides"


class DuplicateEmailError(ValidationError):
    code = "duplicate_email"
    default_message = "Cet email est deja utilise"


class InvalidEmailFormatError(ValidationError):
    code = "invalid_email_format"
    default_message = "Format d'email invalide"


class WeakPasswordError(ValidationError):
    """Registration password shorter than the configured minimum."""

    code = "weak_password"
    default_message = "Le mot de passe doit contenir au moins 6 caracteres"


class PolicyViolationError(ValidationError):
    """New password fails one or more password-policy rules."""

    code = "policy_violation"

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__(f"Mot de passe non conforme: {', '.join(self.violations)}")


class SamePasswordError(ValidationError):
    code = "same_password"
    default_message = "Le nouveau mot de passe doit etre different de l'ancien"


class InvalidCredentialsError(ServiceError):
    code = "invalid_credentials"
    default_message = "Email ou mot de passe incorrect"


class IncorrectCurrentPasswordError(ServiceError):
    code = "incorrect_current_password"
    default_message = "Mot de passe actuel incorrect"


class TokenInvalidError(ServiceError):
    """Bearer or refresh token unknown, consumed or malformed."""

    code = "token_invalid"
    default_message = "Token invalide ou expire"

    @property
    def expired(self) -> bool:
        return False


class TokenExpiredError(TokenInvalidError):
    """Token known to the store but past its horizon."""

    code = "token_expired"

    @property
    def expired(self) -> bool:
        return True


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found.

    :param entity: Entity name (e.g. ``"User"``).
    :param key: Identifier or search key.
    """

    entity: str
    key: str | int
    message: str = field(default="Utilisateur non trouve")

    code = "not_found"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


class ForbiddenError(ServiceError):
    code = "forbidden"
    default_message = "Acces reserve aux administrateurs"


class PasswordChangeRequiredError(ServiceError):
    """Actor must change a provisioned password before using other endpoints."""

    code = "password_change_required"
    default_message = "Changement de mot de passe requis"


class StorageError(ServiceError):
    """A persistence backend (database, Redis) failed underneath a store call."""

    code = "storage_error"
    default_message = "Erreur de stockage"
