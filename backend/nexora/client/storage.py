"""
Durable storage of the session credentials.

Four fixed keys are always written and cleared together so a restart never
finds a partially saved session:

- ``nexora_token``: access token
- ``nexora_refresh_token``: refresh token
- ``nexora_user``: JSON-serialized user (no password)
- ``nexora_expires_at``: access expiry, ISO 8601
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

TOKEN_KEY = "nexora_token"
REFRESH_TOKEN_KEY = "nexora_refresh_token"
USER_KEY = "nexora_user"
EXPIRES_AT_KEY = "nexora_expires_at"

STORAGE_KEYS = (TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, EXPIRES_AT_KEY)


@dataclass(frozen=True)
class StoredCredentials:
    """In-memory form of the four persisted values."""

    token: str
    refresh_token: str
    user: dict[str, Any]
    expires_at: str

    @property
    def expires_at_dt(self) -> datetime | None:
        """Parsed access expiry (UTC), ``None`` when unparsable."""
        try:
            parsed = datetime.fromisoformat(self.expires_at)
        except (TypeError, ValueError):
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)

    @property
    def must_change_password(self) -> bool:
        return bool(self.user.get("mustChangePassword", False))

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> StoredCredentials:
        """Build from a ``{user, token, refreshToken, expiresAt}`` API body."""
        return cls(
            token=data["token"],
            refresh_token=data["refreshToken"],
            user=dict(data["user"]),
            expires_at=data["expiresAt"],
        )

    def to_items(self) -> dict[str, str]:
        return {
            TOKEN_KEY: self.token,
            REFRESH_TOKEN_KEY: self.refresh_token,
            USER_KEY: json.dumps(self.user),
            EXPIRES_AT_KEY: self.expires_at,
        }

    @classmethod
    def from_items(cls, items: dict[str, str]) -> StoredCredentials | None:
        """Rebuild from raw items; ``None`` unless all four keys are present and valid."""
        if any(not items.get(key) for key in STORAGE_KEYS):
            return None
        try:
            user = json.loads(items[USER_KEY])
        except ValueError:
            return None
        if not isinstance(user, dict):
            return None
        return cls(
            token=items[TOKEN_KEY],
            refresh_token=items[REFRESH_TOKEN_KEY],
            user=user,
            expires_at=items[EXPIRES_AT_KEY],
        )


class CredentialStorage(ABC):
    """All-or-nothing key/value persistence for the four session keys."""

    @abstractmethod
    def _read(self) -> dict[str, str]: ...

    @abstractmethod
    def _write(self, items: dict[str, str]) -> None: ...

    @abstractmethod
    def _erase(self) -> None: ...

    def load(self) -> StoredCredentials | None:
        """Return the saved credentials, or ``None`` when absent or incomplete."""
        return StoredCredentials.from_items(self._read())

    def save(self, credentials: StoredCredentials) -> None:
        self._write(credentials.to_items())

    def clear(self) -> None:
        self._erase()


class MemoryCredentialStorage(CredentialStorage):
    """Process-local storage, mainly for tests and short-lived scripts."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def _read(self) -> dict[str, str]:
        return dict(self._items)

    def _write(self, items: dict[str, str]) -> None:
        self._items = dict(items)

    def _erase(self) -> None:
        self._items = {}


class FileCredentialStorage(CredentialStorage):
    """
    Single JSON document on disk, replaced atomically.

    The document is written to a temporary file in the same directory and
    moved into place with :func:`os.replace`, so a crash leaves either the
    old or the new set of keys, never a mix.

    :param path: Location of the JSON document.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("credential_storage.corrupt", extra={"outcome": str(self.path)})
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if k in STORAGE_KEYS and isinstance(v, str)}

    def _write(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".nexora-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(items, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _erase(self) -> None:
        self.path.unlink(missing_ok=True)
