from __future__ import annotations

from dataclasses import dataclass

from nexora.services._shared.ports.token_store import TokenPair

__all__ = ["TokenPair", "TokenValidation"]


@dataclass(frozen=True)
class TokenValidation:
    """
    Result of validating an access token.

    :ivar valid: ``True`` only for a known, unexpired token.
    :ivar user_id: Owner, set whenever the token is known.
    :ivar expired: ``True`` for a known token past its horizon; ``None`` when
        the token is unknown.
    """

    valid: bool
    user_id: int | None = None
    expired: bool | None = None
