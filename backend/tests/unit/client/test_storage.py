"""Unit tests for credential storage adapters."""

from __future__ import annotations

import json
import os

import pytest
from nexora.client.storage import (
    STORAGE_KEYS,
    FileCredentialStorage,
    MemoryCredentialStorage,
    StoredCredentials,
)

CREDS = StoredCredentials(
    token="access-1",
    refresh_token="refresh-1",
    user={"id": 1, "email": "alice@example.com", "mustChangePassword": True},
    expires_at="2025-03-01T12:30:00+00:00",
)


@pytest.fixture(params=["memory", "file"])
def storage(request, tmp_path):
    if request.param == "memory":
        return MemoryCredentialStorage()
    return FileCredentialStorage(tmp_path / "session.json")


def test_save_load_clear(storage):
    assert storage.load() is None

    storage.save(CREDS)
    loaded = storage.load()
    assert loaded == CREDS
    assert loaded.must_change_password is True
    assert loaded.expires_at_dt.isoformat() == "2025-03-01T12:30:00+00:00"

    storage.clear()
    assert storage.load() is None


def test_file_layout_uses_the_four_keys(tmp_path):
    path = tmp_path / "session.json"
    FileCredentialStorage(path).save(CREDS)

    data = json.loads(path.read_text())
    assert set(data) == set(STORAGE_KEYS)
    assert json.loads(data["nexora_user"])["email"] == "alice@example.com"


def test_partial_file_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({"nexora_token": "access-1", "nexora_refresh_token": "r"}))
    assert FileCredentialStorage(path).load() is None


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert FileCredentialStorage(path).load() is None


def test_save_leaves_no_temporary_files(tmp_path):
    store = FileCredentialStorage(tmp_path / "nested" / "session.json")
    store.save(CREDS)
    store.save(CREDS)
    assert os.listdir(tmp_path / "nested") == ["session.json"]


def test_failed_write_keeps_previous_document(tmp_path, monkeypatch):
    path = tmp_path / "session.json"
    store = FileCredentialStorage(path)
    store.save(CREDS)

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(OSError):
        store.save(StoredCredentials("a2", "r2", {"id": 2}, "2025-03-02T00:00:00+00:00"))

    assert store.load() == CREDS
    assert os.listdir(tmp_path) == ["session.json"]


def test_unparsable_expiry():
    creds = StoredCredentials("a", "r", {}, "tomorrow")
    assert creds.expires_at_dt is None
