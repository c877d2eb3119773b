"""Persistent credential store keyed by provider family.

All stored OAuth/token records live in one JSON file,
``~/.local/share/modelroute/auth.json`` (XDG) or the platform-equivalent
directory::

    {
      "credentials": {
        "openai": {"provider": "openai", "access_token": "...", ...},
        "google-antigravity": {...}
      }
    }

Writes go through :func:`~modelroute.config.atomic_write` with ``0o600``
permissions.  Every read-modify-write runs under a re-entrant lock shared by
all stores opened on the same file, so concurrent resolutions in one process
never lose each other's updates; across processes the last writer wins.

Readers always receive copies.  A stored :class:`AuthCredential` changes
only through :meth:`BaseCredentialStore.set` or :meth:`BaseCredentialStore.delete`.

See Also:
    :class:`~modelroute.auth.lifecycle.CredentialManager` -- freshness and
    refresh on top of a store.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from modelroute.config import atomic_write, get_data_dir

logger = logging.getLogger(__name__)

_STORE_FILENAME = "auth.json"

_path_locks: dict[Path, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    """Return the process-wide lock for the credential file at *path*."""
    key = path.expanduser().resolve()
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.RLock()
        return lock


class AuthCredential(BaseModel):
    """One stored OAuth or pasted-token record.

    Attributes:
        provider: Credential family key, e.g. ``"openai"`` or
            ``"google-antigravity"``.
        access_token: The bearer token sent to the provider.
        refresh_token: Token used to obtain a new access token, if the
            provider issued one.
        expires_at: UTC expiry.  ``None`` means the token never expires.
        account_id: Provider account identifier (OpenAI ChatGPT account).
        email: Account email fetched from the identity endpoint.
        project_id: Cloud project backing the credential (Cloud Code).
        auth_method: How the credential was obtained: ``oauth`` or ``token``.
    """

    provider: str = Field(description="Credential family key")
    access_token: str = Field(description="Bearer token sent to the provider")
    refresh_token: str = ""
    expires_at: Optional[datetime] = Field(
        default=None, description="When the access token expires (None = never)"
    )
    account_id: str = ""
    email: str = ""
    project_id: str = ""
    auth_method: str = "oauth"


class BaseCredentialStore(ABC):
    """Interface every credential store implements.

    Subclasses provide :meth:`_read` and :meth:`_write`; the public
    operations wrap them in the store's lock so that each call is atomic
    with respect to other callers in the same process.

    Args:
        lock: Lock guarding the backing storage.  Stores sharing storage
            must share the lock.  Defaults to a private one.
    """

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self._lock = lock or threading.RLock()

    @abstractmethod
    def _read(self) -> dict[str, AuthCredential]:
        """Return every stored credential, keyed by family."""

    @abstractmethod
    def _write(self, credentials: dict[str, AuthCredential]) -> None:
        """Replace the stored credentials with *credentials*."""

    def load(self) -> dict[str, AuthCredential]:
        """Return a copy of every stored credential, keyed by family."""
        with self._lock:
            return {k: v.model_copy(deep=True) for k, v in self._read().items()}

    def get(self, family: str) -> Optional[AuthCredential]:
        """Return a copy of the credential stored for *family*, or ``None``."""
        with self._lock:
            cred = self._read().get(family)
            return cred.model_copy(deep=True) if cred is not None else None

    def set(self, family: str, credential: AuthCredential) -> None:
        """Store *credential* under *family*, replacing any previous entry whole."""
        stored = credential.model_copy(update={"provider": family}, deep=True)
        with self._lock:
            credentials = self._read()
            credentials[family] = stored
            self._write(credentials)

    def delete(self, family: str) -> None:
        """Remove *family*'s credential.  A no-op when none is stored."""
        with self._lock:
            credentials = self._read()
            if credentials.pop(family, None) is not None:
                self._write(credentials)

    def delete_all(self) -> None:
        """Remove every stored credential."""
        with self._lock:
            self._write({})


class FileCredentialStore(BaseCredentialStore):
    """Credential store backed by a single ``0o600`` JSON file.

    Args:
        path: File to use.  Defaults to ``<data_dir>/auth.json``.

    Example::

        store = FileCredentialStore()
        store.set("openai", AuthCredential(provider="openai", access_token="tok"))
        assert store.get("openai").access_token == "tok"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or get_data_dir() / _STORE_FILENAME
        super().__init__(lock=_lock_for(self._path))

    @property
    def path(self) -> Path:
        """The filesystem path to the credential file."""
        return self._path

    def _read(self) -> dict[str, AuthCredential]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            raw = data.get("credentials") or {}
            return {k: AuthCredential.model_validate(v) for k, v in raw.items()}
        except (json.JSONDecodeError, ValidationError, AttributeError, OSError) as exc:
            logger.warning("Ignoring unreadable credential store %s: %s", self._path, exc)
            return {}

    def _write(self, credentials: dict[str, AuthCredential]) -> None:
        payload = {
            "credentials": {k: v.model_dump(mode="json") for k, v in credentials.items()}
        }
        atomic_write(self._path, json.dumps(payload, indent=2) + "\n", mode=0o600)


class MemoryCredentialStore(BaseCredentialStore):
    """In-process store for tests and embedding.  Nothing touches disk."""

    def __init__(self, credentials: Optional[dict[str, AuthCredential]] = None) -> None:
        super().__init__()
        self._credentials: dict[str, AuthCredential] = dict(credentials or {})

    def _read(self) -> dict[str, AuthCredential]:
        return dict(self._credentials)

    def _write(self, credentials: dict[str, AuthCredential]) -> None:
        self._credentials = dict(credentials)
