"""Python client for the authentication API with automatic token refresh."""

from nexora.client.scheduler import Scheduler, ThreadingScheduler
from nexora.client.session import SessionClient
from nexora.client.state import (
    AuthResult,
    NotAuthenticated,
    PasswordChangeRequired,
    SessionError,
    SessionState,
)
from nexora.client.storage import (
    CredentialStorage,
    FileCredentialStorage,
    MemoryCredentialStorage,
    StoredCredentials,
)
from nexora.client.transport import ApiResponse, AuthApi, TransportError

__all__ = [
    "ApiResponse",
    "AuthApi",
    "AuthResult",
    "CredentialStorage",
    "FileCredentialStorage",
    "MemoryCredentialStorage",
    "NotAuthenticated",
    "PasswordChangeRequired",
    "Scheduler",
    "SessionClient",
    "SessionError",
    "SessionState",
    "StoredCredentials",
    "ThreadingScheduler",
    "TransportError",
]
