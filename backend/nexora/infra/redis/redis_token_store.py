# comments in English; reST docstrings
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

import redis  # type: ignore[import-untyped]

from nexora.services._shared.errors import StorageError
from nexora.services._shared.ports.token_store import (
    PairBuilder,
    RotationResult,
    TokenPair,
    TokenStore,
)

log = logging.getLogger(__name__)

_FIELDS = (
    "access_token",
    "refresh_token",
    "access_expires_at",
    "refresh_expires_at",
    "created_at",
)


def _s(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    return value.decode() if isinstance(value, bytes | bytearray) else str(value)


def _ms(dt: datetime) -> int:
    return int(dt.astimezone(UTC).timestamp() * 1000)


@dataclass(slots=True)
class RedisTokenStore(TokenStore):
    """
    Redis-backed token store with atomic rotation.

    Layout: one hash ``tok:u:<user_id>`` per owner holding the pair, plus two
    index strings ``tok:a:<access>`` and ``tok:r:<refresh>`` pointing at the
    owner. Every key expires with the refresh horizon.

    :param r: A Redis client (already connected).
    """

    r: redis.Redis

    # -------------------- helpers --------------------

    @staticmethod
    def _ku(user_id: int) -> str:
        return f"tok:u:{user_id}"

    @staticmethod
    def _ka(access_token: str) -> str:
        return f"tok:a:{access_token}"

    @staticmethod
    def _kr(refresh_token: str) -> str:
        return f"tok:r:{refresh_token}"

    @staticmethod
    def _decode(user_id: int, h: dict) -> TokenPair | None:
        if not h:
            return None
        data = {_s(k): _s(v) for k, v in h.items()}
        return TokenPair(
            user_id=user_id,
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            access_expires_at=datetime.fromisoformat(data["access_expires_at"]),
            refresh_expires_at=datetime.fromisoformat(data["refresh_expires_at"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    def _queue_drop(self, pipe, old: TokenPair) -> None:
        pipe.delete(self._ku(old.user_id), self._ka(old.access_token), self._kr(old.refresh_token))

    def _queue_put(self, pipe, pair: TokenPair) -> None:
        k_user = self._ku(pair.user_id)
        owner = str(pair.user_id)
        pipe.hset(
            k_user,
            mapping={
                "access_token": pair.access_token,
                "refresh_token": pair.refresh_token,
                "access_expires_at": pair.access_expires_at.isoformat(),
                "refresh_expires_at": pair.refresh_expires_at.isoformat(),
                "created_at": pair.created_at.isoformat(),
            },
        )
        pipe.set(self._ka(pair.access_token), owner)
        pipe.set(self._kr(pair.refresh_token), owner)
        deadline = _ms(pair.refresh_expires_at)
        for key in (k_user, self._ka(pair.access_token), self._kr(pair.refresh_token)):
            pipe.pexpireat(key, deadline)

    def _lookup(self, index_key: str) -> TokenPair | None:
        try:
            owner = _s(self.r.get(index_key))
            if owner is None:
                return None
            user_id = int(owner)
            return self._decode(user_id, self.r.hgetall(self._ku(user_id)))
        except redis.RedisError as exc:
            raise StorageError() from exc

    # -------------------- API ------------------------

    def replace(self, pair: TokenPair) -> None:
        """Swap the owner's pair inside one ``MULTI`` block guarded by ``WATCH``."""
        k_user = self._ku(pair.user_id)
        try:
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(k_user)
                        old = self._decode(pair.user_id, p.hgetall(k_user))
                        p.multi()
                        if old is not None:
                            self._queue_drop(p, old)
                        self._queue_put(p, pair)
                        p.execute()
                    return
                except redis.WatchError:
                    # Concurrent write on the owner; retry
                    continue
        except redis.RedisError as exc:
            raise StorageError() from exc

    def rotate(
        self, refresh_token: str, *, now: datetime, build: PairBuilder
    ) -> tuple[RotationResult, TokenPair | None]:
        """
        Atomically consume ``refresh_token`` and store the owner's new pair.

        Uses WATCH/MULTI/EXEC (optimistic locking) on the refresh index and
        the owner hash. A concurrent rotation that commits first invalidates
        the watch; the retry then finds the index gone and reports
        ``NOT_FOUND``.
        """
        k_refresh = self._kr(refresh_token)
        try:
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(k_refresh)
                        owner = _s(p.get(k_refresh))
                        if owner is None:
                            p.unwatch()
                            return RotationResult.NOT_FOUND, None
                        user_id = int(owner)
                        k_user = self._ku(user_id)
                        p.watch(k_user)
                        current = self._decode(user_id, p.hgetall(k_user))
                        if current is None or current.refresh_token != refresh_token:
                            p.unwatch()
                            return RotationResult.NOT_FOUND, None

                        if now > current.refresh_expires_at:
                            p.multi()
                            self._queue_drop(p, current)
                            p.execute()
                            return RotationResult.EXPIRED, None

                        fresh = build(user_id)
                        p.multi()
                        self._queue_drop(p, current)
                        self._queue_put(p, fresh)
                        p.execute()
                    return RotationResult.OK, fresh
                except redis.WatchError:
                    continue
        except redis.RedisError as exc:
            raise StorageError() from exc

    def get_by_access(self, access_token: str) -> TokenPair | None:
        return self._lookup(self._ka(access_token))

    def get_by_refresh(self, refresh_token: str) -> TokenPair | None:
        return self._lookup(self._kr(refresh_token))

    def get_by_user(self, user_id: int) -> TokenPair | None:
        try:
            return self._decode(user_id, self.r.hgetall(self._ku(user_id)))
        except redis.RedisError as exc:
            raise StorageError() from exc

    def delete_for_user(self, user_id: int) -> bool:
        k_user = self._ku(user_id)
        try:
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(k_user)
                        old = self._decode(user_id, p.hgetall(k_user))
                        if old is None:
                            p.unwatch()
                            return False
                        p.multi()
                        self._queue_drop(p, old)
                        p.execute()
                    return True
                except redis.WatchError:
                    continue
        except redis.RedisError as exc:
            raise StorageError() from exc

    def purge_expired(self, now: datetime) -> int:
        """
        Delete pairs whose refresh horizon is behind ``now``.

        Keys already carry a matching expiry, so this only catches pairs the
        server has not evicted yet (or a clock ahead of Redis).
        """
        removed = 0
        try:
            for key in self.r.scan_iter(match="tok:u:*"):
                user_id = int(_s(key).rsplit(":", 1)[1])
                pair = self._decode(user_id, self.r.hgetall(key))
                if pair is not None and now > pair.refresh_expires_at:
                    if self.delete_for_user(user_id):
                        removed += 1
        except redis.RedisError as exc:
            raise StorageError() from exc
        return removed
