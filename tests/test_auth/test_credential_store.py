"""Tests for the credential stores."""

from __future__ import annotations

import json
import os
import stat
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from modelroute.auth.credential_store import (
    AuthCredential,
    FileCredentialStore,
    MemoryCredentialStore,
)


@pytest.fixture()
def file_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FileCredentialStore:
    """A FileCredentialStore whose default path lands in tmp_path."""
    monkeypatch.setattr(
        "modelroute.auth.credential_store.get_data_dir",
        lambda: tmp_path,
    )
    return FileCredentialStore()


def _cred(provider: str = "openai", **kwargs: object) -> AuthCredential:
    return AuthCredential(provider=provider, access_token=f"{provider}-tok", **kwargs)  # type: ignore[arg-type]


class TestAuthCredential:
    def test_minimal(self) -> None:
        cred = AuthCredential(provider="anthropic", access_token="abc")
        assert cred.refresh_token == ""
        assert cred.expires_at is None
        assert cred.auth_method == "oauth"

    def test_roundtrip_json(self) -> None:
        cred = _cred(expires_at=datetime(2030, 6, 15, 12, 0, tzinfo=timezone.utc), email="a@b.c")
        restored = AuthCredential.model_validate(json.loads(cred.model_dump_json()))
        assert restored == cred


class TestFileCredentialStore:
    def test_default_path(self, file_store: FileCredentialStore, tmp_path: Path) -> None:
        assert file_store.path == tmp_path / "auth.json"

    def test_load_missing_file(self, file_store: FileCredentialStore) -> None:
        assert file_store.load() == {}
        assert file_store.get("openai") is None

    def test_set_and_get(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred(refresh_token="r"))
        loaded = file_store.get("openai")
        assert loaded is not None
        assert loaded.access_token == "openai-tok"
        assert loaded.refresh_token == "r"

    def test_file_format(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred())
        data = json.loads(file_store.path.read_text())
        assert list(data) == ["credentials"]
        assert data["credentials"]["openai"]["access_token"] == "openai-tok"

    def test_file_permissions(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred())
        assert stat.S_IMODE(os.stat(file_store.path).st_mode) == 0o600

    def test_set_overwrites_provider_with_family_key(self, file_store: FileCredentialStore) -> None:
        file_store.set("google-antigravity", _cred("something-else"))
        assert file_store.get("google-antigravity").provider == "google-antigravity"

    def test_set_is_full_replace(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred(refresh_token="old", email="a@b.c"))
        file_store.set("openai", _cred())
        loaded = file_store.get("openai")
        assert loaded.refresh_token == ""
        assert loaded.email == ""

    def test_families_are_independent(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred("openai"))
        file_store.set("anthropic", _cred("anthropic"))
        assert sorted(file_store.load()) == ["anthropic", "openai"]

    def test_delete(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred("openai"))
        file_store.set("anthropic", _cred("anthropic"))
        file_store.delete("openai")
        assert file_store.get("openai") is None
        assert file_store.get("anthropic") is not None

    def test_delete_missing_is_noop(self, file_store: FileCredentialStore) -> None:
        file_store.delete("openai")
        assert not file_store.path.exists()

    def test_delete_all(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred("openai"))
        file_store.set("anthropic", _cred("anthropic"))
        file_store.delete_all()
        assert file_store.load() == {}

    def test_corrupt_file_reads_as_empty(self, file_store: FileCredentialStore) -> None:
        file_store.path.write_text("{broken")
        assert file_store.load() == {}

    def test_returned_copies_do_not_alias(self, file_store: FileCredentialStore) -> None:
        file_store.set("openai", _cred())
        loaded = file_store.get("openai")
        loaded.access_token = "mutated"
        assert file_store.get("openai").access_token == "openai-tok"

    def test_explicit_path(self, tmp_path: Path) -> None:
        store = FileCredentialStore(tmp_path / "custom" / "creds.json")
        store.set("openai", _cred())
        assert (tmp_path / "custom" / "creds.json").is_file()

    def test_stores_on_one_file_share_a_lock(self, tmp_path: Path) -> None:
        first = FileCredentialStore(tmp_path / "auth.json")
        second = FileCredentialStore(tmp_path / "sub" / ".." / "auth.json")
        other = FileCredentialStore(tmp_path / "other.json")
        assert first._lock is second._lock
        assert first._lock is not other._lock

    def test_concurrent_sets_through_separate_instances(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "auth.json"
        original_read = FileCredentialStore._read

        def _slow_read(self: FileCredentialStore) -> dict[str, AuthCredential]:
            credentials = original_read(self)
            time.sleep(0.01)
            return credentials

        monkeypatch.setattr(FileCredentialStore, "_read", _slow_read)

        def _worker(index: int) -> None:
            FileCredentialStore(path).set(f"family-{index}", _cred(f"family-{index}"))

        threads = [threading.Thread(target=_worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert sorted(FileCredentialStore(path).load()) == sorted(f"family-{i}" for i in range(8))


class TestMemoryCredentialStore:
    def test_initial_credentials(self) -> None:
        store = MemoryCredentialStore({"openai": _cred()})
        assert store.get("openai").access_token == "openai-tok"

    def test_set_does_not_alias_caller_object(self) -> None:
        store = MemoryCredentialStore()
        cred = _cred()
        store.set("openai", cred)
        cred.access_token = "mutated"
        assert store.get("openai").access_token == "openai-tok"

    def test_concurrent_sets(self) -> None:
        store = MemoryCredentialStore()

        def _worker(index: int) -> None:
            store.set(f"family-{index}", _cred(f"family-{index}"))

        threads = [threading.Thread(target=_worker, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(store.load()) == 20
