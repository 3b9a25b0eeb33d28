from nexora.models.auth_token import AuthToken
from nexora.models.user import User, UserRole

__all__ = [
    "AuthToken",
    "User",
    "UserRole",
]
