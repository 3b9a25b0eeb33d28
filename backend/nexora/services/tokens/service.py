"""Token issuance, validation, rotation and revocation."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from nexora.services._shared.ports.token_store import RotationResult, TokenStore
from nexora.services.tokens.dto import TokenPair, TokenValidation

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TokenPolicy:
    """
    Expiry and entropy settings of issued pairs.

    :ivar access_ttl: Lifetime of the access token.
    :ivar refresh_ttl: Lifetime of the refresh token; must exceed ``access_ttl``.
    :ivar token_bytes: Random bytes drawn per token.
    :raises ValueError: On a refresh TTL not strictly greater than the access
        TTL, or fewer than 16 random bytes.
    """

    access_ttl: timedelta = timedelta(minutes=30)
    refresh_ttl: timedelta = timedelta(days=7)
    token_bytes: int = 32

    def __post_init__(self) -> None:
        if self.access_ttl <= timedelta(0):
            raise ValueError("Access token TTL must be positive.")
        if self.refresh_ttl <= self.access_ttl:
            raise ValueError("Refresh token TTL must be strictly greater than the access TTL.")
        if self.token_bytes < 16:
            raise ValueError("Tokens need at least 16 random bytes.")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> TokenPolicy:
        """Build the policy from ``ACCESS_TOKEN_TTL_MINUTES``, ``REFRESH_TOKEN_TTL_DAYS`` and ``TOKEN_BYTES``."""
        return cls(
            access_ttl=timedelta(minutes=int(config.get("ACCESS_TOKEN_TTL_MINUTES", 30))),
            refresh_ttl=timedelta(days=int(config.get("REFRESH_TOKEN_TTL_DAYS", 7))),
            token_bytes=int(config.get("TOKEN_BYTES", 32)),
        )


class TokenService:
    """
    Owns the token lifecycle on top of a :class:`TokenStore`.

    Every user holds at most one pair: :meth:`issue` replaces it and
    :meth:`refresh` swaps it for a brand-new one. Store failures
    (:class:`~nexora.services._shared.errors.StorageError`) propagate as is.

    Parameters
    ----------
    store : TokenStore
        Persistence adapter.
    policy : TokenPolicy, optional
        Expiry horizons and token size.
    clock : Callable[[], datetime], optional
        Source of "now" (timezone-aware UTC).
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        policy: TokenPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.policy = policy or TokenPolicy()
        self.clock = clock

    def _new_token(self) -> str:
        return secrets.token_urlsafe(self.policy.token_bytes)

    def _build(self, user_id: int, now: datetime) -> TokenPair:
        return TokenPair(
            user_id=user_id,
            access_token=self._new_token(),
            refresh_token=self._new_token(),
            access_expires_at=now + self.policy.access_ttl,
            refresh_expires_at=now + self.policy.refresh_ttl,
            created_at=now,
        )

    def issue(self, user_id: int) -> TokenPair:
        """Replace any pair of ``user_id`` with a fresh one and return it."""
        pair = self._build(user_id, self.clock())
        self.store.replace(pair)
        log.info("token.issued", extra={"user_id": user_id})
        return pair

    def validate(self, access_token: str) -> TokenValidation:
        """
        Check an access token against the store.

        :returns: ``valid=False`` with ``expired`` unset for an unknown token;
            ``valid=False, expired=True`` with the owner for a stale one;
            ``valid=True`` with the owner otherwise.
        """
        if not access_token:
            return TokenValidation(valid=False)
        pair = self.store.get_by_access(access_token)
        if pair is None:
            return TokenValidation(valid=False)
        if self.clock() > pair.access_expires_at:
            return TokenValidation(valid=False, user_id=pair.user_id, expired=True)
        return TokenValidation(valid=True, user_id=pair.user_id)

    def refresh(self, refresh_token: str) -> TokenPair | None:
        """
        Consume ``refresh_token`` and return the owner's new pair.

        :returns: ``None`` when the token is unknown, already consumed, or
            expired (the stale pair is deleted in that case).
        """
        if not refresh_token:
            return None
        now = self.clock()
        result, pair = self.store.rotate(
            refresh_token, now=now, build=lambda user_id: self._build(user_id, now)
        )
        if result is RotationResult.OK and pair is not None:
            log.info("token.refreshed", extra={"user_id": pair.user_id})
            return pair
        log.info("token.refresh_rejected", extra={"outcome": result.name.lower()})
        return None

    def revoke(self, user_id: int) -> None:
        """Delete the active pair of ``user_id``; a no-op when none exists."""
        removed = self.store.delete_for_user(user_id)
        log.info("token.revoked", extra={"user_id": user_id, "outcome": removed})

    def current(self, user_id: int) -> TokenPair | None:
        return self.store.get_by_user(user_id)

    def purge_expired(self) -> int:
        """Delete pairs whose refresh horizon has elapsed. :returns: count."""
        count = self.store.purge_expired(self.clock())
        log.info("token.purged", extra={"outcome": count})
        return count
