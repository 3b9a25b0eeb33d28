from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Protocol


class RotationResult(Enum):
    """Outcome of an atomic refresh rotation attempt."""

    OK = auto()
    NOT_FOUND = auto()
    EXPIRED = auto()


@dataclass(frozen=True)
class TokenPair:
    """
    Active credentials of one user.

    :ivar user_id: Owner user id.
    :ivar access_token: Opaque bearer token for API calls.
    :ivar refresh_token: Opaque token accepted only for renewal.
    :ivar access_expires_at: End of the access horizon (UTC).
    :ivar refresh_expires_at: End of the refresh horizon (UTC).
    :ivar created_at: Issuance instant (UTC).
    """

    user_id: int
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    created_at: datetime


PairBuilder = Callable[[int], TokenPair]


class TokenStore(Protocol):
    """
    Persistence port for token pairs, keyed by owner.

    Every adapter keeps at most one pair per user and makes :meth:`replace`
    and :meth:`rotate` atomic. Backend failures surface as
    :class:`~nexora.services._shared.errors.StorageError`.
    """

    def replace(self, pair: TokenPair) -> None:
        """Drop any pair owned by ``pair.user_id`` and store ``pair`` in its place."""

    def get_by_access(self, access_token: str) -> TokenPair | None:
        """Return the pair holding ``access_token``, expired or not."""

    def get_by_refresh(self, refresh_token: str) -> TokenPair | None:
        """Return the pair holding ``refresh_token``, expired or not."""

    def get_by_user(self, user_id: int) -> TokenPair | None:
        """Return the active pair of ``user_id``."""

    def rotate(
        self, refresh_token: str, *, now: datetime, build: PairBuilder
    ) -> tuple[RotationResult, TokenPair | None]:
        """
        Consume ``refresh_token`` and store ``build(owner_id)`` in its place.

        Exactly one of several concurrent callers presenting the same token
        gets ``RotationResult.OK``; the others see ``NOT_FOUND``. A pair whose
        refresh horizon is behind ``now`` is deleted and ``EXPIRED`` returned.
        """

    def delete_for_user(self, user_id: int) -> bool:
        """Delete the pair of ``user_id``. :returns: True if one existed."""

    def purge_expired(self, now: datetime) -> int:
        """Delete every pair whose refresh horizon is behind ``now``. :returns: count."""


class InMemoryTokenStore(TokenStore):
    """
    In-memory token store with atomic rotation behavior.

    .. note::
       A single lock serialises every operation; suitable for tests and
       single-process development servers.
    """

    def __init__(self) -> None:
        self._by_user: dict[int, TokenPair] = {}
        self._access_index: dict[str, int] = {}
        self._refresh_index: dict[str, int] = {}
        self._lock = threading.Lock()

    # ------------------------- helpers -------------------------

    def _drop(self, user_id: int) -> TokenPair | None:
        old = self._by_user.pop(user_id, None)
        if old is not None:
            self._access_index.pop(old.access_token, None)
            self._refresh_index.pop(old.refresh_token, None)
        return old

    def _put(self, pair: TokenPair) -> None:
        self._by_user[pair.user_id] = pair
        self._access_index[pair.access_token] = pair.user_id
        self._refresh_index[pair.refresh_token] = pair.user_id

    # -------------------------- API ----------------------------

    def replace(self, pair: TokenPair) -> None:
        with self._lock:
            self._drop(pair.user_id)
            self._put(pair)

    def get_by_access(self, access_token: str) -> TokenPair | None:
        with self._lock:
            user_id = self._access_index.get(access_token)
            return None if user_id is None else self._by_user.get(user_id)

    def get_by_refresh(self, refresh_token: str) -> TokenPair | None:
        with self._lock:
            user_id = self._refresh_index.get(refresh_token)
            return None if user_id is None else self._by_user.get(user_id)

    def get_by_user(self, user_id: int) -> TokenPair | None:
        with self._lock:
            return self._by_user.get(user_id)

    def rotate(
        self, refresh_token: str, *, now: datetime, build: PairBuilder
    ) -> tuple[RotationResult, TokenPair | None]:
        with self._lock:
            user_id = self._refresh_index.get(refresh_token)
            if user_id is None:
                return RotationResult.NOT_FOUND, None
            current = self._by_user[user_id]
            if now > current.refresh_expires_at:
                self._drop(user_id)
                return RotationResult.EXPIRED, None
            fresh = build(user_id)
            self._drop(user_id)
            self._put(fresh)
            return RotationResult.OK, fresh

    def delete_for_user(self, user_id: int) -> bool:
        with self._lock:
            return self._drop(user_id) is not None

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            stale = [uid for uid, p in self._by_user.items() if now > p.refresh_expires_at]
            for uid in stale:
                self._drop(uid)
            return len(stale)
