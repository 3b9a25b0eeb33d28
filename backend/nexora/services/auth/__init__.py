from .dto import (
    AuthSession,
    ChangePasswordIn,
    LoginIn,
    MeOut,
    ProvisionIn,
    ProvisionOut,
    RegisterIn,
    UserView,
)
from .service import AuthService

__all__ = [
    "AuthService",
    "AuthSession",
    "ChangePasswordIn",
    "LoginIn",
    "MeOut",
    "ProvisionIn",
    "ProvisionOut",
    "RegisterIn",
    "UserView",
]
