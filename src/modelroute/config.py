"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles persistent state for modelroute:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.modelroute/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Router config** -- a single JSON file deserialised into
  :class:`~modelroute.models.RouterConfig`.  The path can be overridden with
  ``MODELROUTE_CONFIG``.
* **Precedence resolution** -- :func:`resolve_config` layers CLI flags and
  environment variables over the file.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written file behind.
The credential store reuses it with ``mode=0o600``.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from modelroute.exceptions import ConfigurationError
from modelroute.models import RouterConfig

_APP_NAME = "modelroute"
_CONFIG_FILENAME = "config.json"

ENV_CONFIG = "MODELROUTE_CONFIG"
ENV_MODEL = "MODELROUTE_MODEL"
ENV_PROVIDER = "MODELROUTE_PROVIDER"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/modelroute/`` (default ``~/.config/modelroute/``).
    On macOS/Windows: ``~/.modelroute/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/modelroute/`` (default ``~/.local/share/modelroute/``).
    On macOS/Windows: ``~/.modelroute/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  When *mode* is
    given, permissions are applied to the temp file before any content is
    written, so secrets are never briefly world-readable.

    Args:
        path: Destination file.
        data: Full text content.
        mode: Optional permission bits, e.g. ``0o600``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Router config ---


def get_config_path() -> Path:
    """Path to the router config file, honouring ``MODELROUTE_CONFIG``."""
    override = os.environ.get(ENV_CONFIG, "")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


def load_config(path: Optional[Path] = None) -> RouterConfig:
    """Load the router configuration.

    Args:
        path: Explicit file to read.  Defaults to :func:`get_config_path`.

    Returns:
        The deserialised :class:`~modelroute.models.RouterConfig`.  If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigurationError: If the file exists but contains invalid JSON or
            fails Pydantic validation.
    """
    path = path or get_config_path()
    if not path.is_file():
        return RouterConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return RouterConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: RouterConfig, path: Optional[Path] = None) -> None:
    """Persist the router configuration atomically to disk.

    Args:
        config: The configuration to save.
        path: Explicit destination.  Defaults to :func:`get_config_path`.
    """
    data = config.model_dump(mode="json")
    atomic_write(path or get_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_model: Optional[str] = None,
    cli_provider: Optional[str] = None,
) -> RouterConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_model``, ``cli_provider``)
        2. Environment variables (``MODELROUTE_MODEL``, ``MODELROUTE_PROVIDER``)
        3. Config file
        4. Defaults

    Returns:
        The effective :class:`~modelroute.models.RouterConfig`.
    """
    config = load_config()
    defaults = config.agents.defaults

    env_model = os.environ.get(ENV_MODEL)
    if env_model:
        defaults.model = env_model
    env_provider = os.environ.get(ENV_PROVIDER)
    if env_provider:
        defaults.provider = env_provider

    if cli_model is not None:
        defaults.model = cli_model
    if cli_provider is not None:
        defaults.provider = cli_provider

    return config
