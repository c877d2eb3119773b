"""Shared test fixtures for modelroute.

Provides isolated config/data directories, in-memory credential stores
with a fixed clock, and output-state management.  These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from modelroute.auth.credential_store import MemoryCredentialStore
from modelroute.auth.lifecycle import CredentialManager
from modelroute.output import OutputFormat, OutputManager, reset_output, set_output

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
"""Fixed "current time" used by clock-driven tests."""


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and credentials to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config or the real credential store.  Clears all MODELROUTE_*
    environment variables and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex"))

    for var in [
        "MODELROUTE_CONFIG",
        "MODELROUTE_MODEL",
        "MODELROUTE_PROVIDER",
        "MODELROUTE_OPENAI_ISSUER",
        "MODELROUTE_OPENAI_CLIENT_ID",
        "MODELROUTE_ANTIGRAVITY_CLIENT_ID",
        "MODELROUTE_ANTIGRAVITY_CLIENT_SECRET",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Credential fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    """The frozen time the ``credentials`` fixture reports."""
    return NOW


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    """An empty in-memory credential store."""
    return MemoryCredentialStore()


@pytest.fixture
def credentials(memory_store: MemoryCredentialStore) -> CredentialManager:
    """A CredentialManager over ``memory_store`` whose clock is frozen at NOW."""
    return CredentialManager(memory_store, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for tests that ignore output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager for tests that parse stdout."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()
