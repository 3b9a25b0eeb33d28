"""
Password rules and one-way hashing.

Pure functions shared by the registration and change-password flows on the
server and by :mod:`nexora.client` for local pre-validation. Nothing here
touches Flask or the database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from werkzeug.security import check_password_hash, generate_password_hash

HASH_METHOD = "scrypt"

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'

MIN_LENGTH = 8
REGISTRATION_MIN_LENGTH = 6

MSG_MIN_LENGTH = "Au moins 8 caracteres"
MSG_UPPERCASE = "Au moins une majuscule"
MSG_LOWERCASE = "Au moins une minuscule"
MSG_DIGIT = "Au moins un chiffre"
MSG_SPECIAL = "Au moins un caractere special"

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")


@dataclass(frozen=True)
class PolicyResult:
    """Outcome of :func:`validate_password`.

    :ivar valid: ``True`` when no rule is violated.
    :ivar violations: Messages of every failed rule, in rule order.
    """

    valid: bool
    violations: list[str] = field(default_factory=list)


def validate_password(password: str) -> PolicyResult:
    """
    Check ``password`` against the change-password rules.

    Every rule is evaluated; the violations keep the order length, uppercase,
    lowercase, digit, special character.

    :param password: Candidate password.
    :type password: str
    :returns: Validity flag and the accumulated violation messages.
    :rtype: PolicyResult
    """
    violations: list[str] = []
    if len(password) < MIN_LENGTH:
        violations.append(MSG_MIN_LENGTH)
    if not _UPPER.search(password):
        violations.append(MSG_UPPERCASE)
    if not _LOWER.search(password):
        violations.append(MSG_LOWERCASE)
    if not _DIGIT.search(password):
        violations.append(MSG_DIGIT)
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        violations.append(MSG_SPECIAL)
    return PolicyResult(valid=not violations, violations=violations)


def registration_message(min_length: int = REGISTRATION_MIN_LENGTH) -> str:
    return f"Le mot de passe doit contenir au moins {min_length} caracteres"


def check_registration_password(
    password: str, min_length: int = REGISTRATION_MIN_LENGTH
) -> str | None:
    """Return the registration rule message when ``password`` is too short, else ``None``."""
    if len(password) < min_length:
        return registration_message(min_length)
    return None


def hash_password(raw: str) -> str:
    """
    Derive a salted, memory-hard digest of ``raw``.

    Two calls with the same input return different strings (fresh salt);
    use :func:`verify_password` to compare.
    """
    return generate_password_hash(raw, method=HASH_METHOD)


def verify_password(password_hash: str, raw: str) -> bool:
    """Return ``True`` when ``raw`` matches ``password_hash`` (constant-time)."""
    return bool(check_password_hash(password_hash, raw))
