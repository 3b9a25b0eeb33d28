"""Relational token store: one ``auth_tokens`` row per user."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nexora.models.auth_token import AuthToken
from nexora.services._shared.errors import StorageError
from nexora.services._shared.ports.token_store import (
    PairBuilder,
    RotationResult,
    TokenPair,
    TokenStore,
)
from nexora.uow.sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork

log = logging.getLogger(__name__)


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive values; everything is stored in UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _to_pair(row: AuthToken) -> TokenPair:
    return TokenPair(
        user_id=row.user_id,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        access_expires_at=_aware(row.access_expires_at),
        refresh_expires_at=_aware(row.refresh_expires_at),
        created_at=_aware(row.created_at),
    )


def _to_row(pair: TokenPair) -> AuthToken:
    return AuthToken(
        user_id=pair.user_id,
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        access_expires_at=pair.access_expires_at,
        refresh_expires_at=pair.refresh_expires_at,
        created_at=pair.created_at,
    )


class SQLAlchemyTokenStore(TokenStore):
    """
    Token store on top of the ``auth_tokens`` table.

    Writes run in their own read-write Unit of Work and commit before
    returning. Single-session relies on the unique ``user_id`` constraint;
    exactly-once rotation on a conditional ``DELETE`` whose row count tells
    the winner.

    :param uow_factory: Read-write Unit of Work factory.
    :param ro_uow_factory: Read-only Unit of Work factory.
    """

    def __init__(
        self,
        *,
        uow_factory: Callable[[], SQLAlchemyUnitOfWork] = SQLAlchemyUnitOfWork,
        ro_uow_factory: Callable[[], SQLAlchemyReadOnlyUnitOfWork] = SQLAlchemyReadOnlyUnitOfWork,
    ) -> None:
        self._uow = uow_factory
        self._ro_uow = ro_uow_factory

    # -------------------- writes --------------------

    def replace(self, pair: TokenPair) -> None:
        """Delete then insert inside one transaction; retried once on a racing insert."""
        for attempt in (1, 2):
            try:
                with self._uow() as uow:
                    uow.auth_tokens.delete_for_user(pair.user_id)
                    uow.auth_tokens.add(_to_row(pair))
                return
            except IntegrityError as exc:
                if attempt == 2:
                    raise StorageError("Concurrent session replacement failed") from exc
                log.warning("token_store.replace_conflict", extra={"user_id": pair.user_id})
            except SQLAlchemyError as exc:
                raise StorageError() from exc

    def rotate(
        self, refresh_token: str, *, now: datetime, build: PairBuilder
    ) -> tuple[RotationResult, TokenPair | None]:
        try:
            with self._uow() as uow:
                row = uow.auth_tokens.get_by_refresh(refresh_token)
                if row is None:
                    return RotationResult.NOT_FOUND, None
                user_id = row.user_id
                if now > _aware(row.refresh_expires_at):
                    # Only the stale row goes; a pair issued meanwhile survives
                    uow.auth_tokens.consume_refresh(row.id, refresh_token)
                    return RotationResult.EXPIRED, None
                if not uow.auth_tokens.consume_refresh(row.id, refresh_token):
                    return RotationResult.NOT_FOUND, None
                fresh = build(user_id)
                uow.auth_tokens.add(_to_row(fresh))
            return RotationResult.OK, fresh
        except IntegrityError:
            # A concurrent issue() for the same owner inserted first
            log.warning("token_store.rotate_conflict")
            return RotationResult.NOT_FOUND, None
        except SQLAlchemyError as exc:
            raise StorageError() from exc

    def delete_for_user(self, user_id: int) -> bool:
        try:
            with self._uow() as uow:
                removed = uow.auth_tokens.delete_for_user(user_id)
        except SQLAlchemyError as exc:
            raise StorageError() from exc
        return removed > 0

    def purge_expired(self, now: datetime) -> int:
        try:
            with self._uow() as uow:
                return uow.auth_tokens.delete_expired(now)
        except SQLAlchemyError as exc:
            raise StorageError() from exc

    # -------------------- reads ---------------------

    def _read(self, lookup: Callable[[SQLAlchemyReadOnlyUnitOfWork], AuthToken | None]):
        try:
            with self._ro_uow() as uow:
                row = lookup(uow)
                return _to_pair(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError() from exc

    def get_by_access(self, access_token: str) -> TokenPair | None:
        return self._read(lambda uow: uow.auth_tokens.get_by_access(access_token))

    def get_by_refresh(self, refresh_token: str) -> TokenPair | None:
        return self._read(lambda uow: uow.auth_tokens.get_by_refresh(refresh_token))

    def get_by_user(self, user_id: int) -> TokenPair | None:
        return self._read(lambda uow: uow.auth_tokens.get_by_user(user_id))
