"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    ChangePasswordSchema,
    LoginSchema,
    MeSchema,
    ProvisionedUserSchema,
    ProvisionUserSchema,
    RefreshSchema,
    RegisterSchema,
    SessionSchema,
    UserSchema,
)

__all__ = [
    "ChangePasswordSchema",
    "LoginSchema",
    "MeSchema",
    "ProvisionedUserSchema",
    "ProvisionUserSchema",
    "RefreshSchema",
    "RegisterSchema",
    "SessionSchema",
    "UserSchema",
]
