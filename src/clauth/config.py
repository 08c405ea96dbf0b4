"""Configuration management: XDG paths, atomic writes, and provider profiles.

This module handles all persistent configuration for the ``clauth`` CLI:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.clauth/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_lock_dir`, :func:`get_profiles_dir`.
* **Profiles** -- One JSON file per provider, each deserialised into a
  :class:`~clauth.models.ProviderProfile`. Managed via :func:`load_profile`,
  :func:`save_profile`, :func:`delete_profile`.
* **Active profile** -- :func:`resolve_profile_name` applies the
  ``--profile`` flag, then ``CLAUTH_PROFILE``.
* **Credential resolution** -- :func:`resolve_credential` reads client ids
  from env vars or files so they need not live in a profile in clear text.

All file writes go through :func:`atomic_write` (temp file, fsync, rename),
which the file token store reuses.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from clauth.exceptions import ConfigError
from clauth.models import ProviderProfile

_APP_NAME = "clauth"
PROFILE_ENV_VAR = "CLAUTH_PROFILE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that follow the XDG Base Directory spec."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    return Path.home().joinpath(*default_segments)


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/clauth/`` (default ``~/.config/clauth/``).
    On macOS/Windows: ``~/.clauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (tokens, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/clauth/`` (default ``~/.local/share/clauth/``).
    On macOS/Windows: ``~/.clauth/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_lock_dir() -> Path:
    """Return the directory for cross-process refresh lock files, creating it if necessary.

    On Linux/BSD: ``$XDG_RUNTIME_DIR/clauth/locks/`` when the runtime directory
    is set, otherwise ``<data_dir>/locks/``. Elsewhere: ``<data_dir>/locks/``.
    """
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR", "")
    if _is_xdg_platform() and runtime_dir:
        path = Path(runtime_dir) / _APP_NAME / "locks"
    else:
        path = get_data_dir() / "locks"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_dir() -> Path:
    """Return ``<config_dir>/profiles/``, creating it if necessary."""
    path = get_config_dir() / "profiles"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, *, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using a temp file and rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX. On any failure the temp
    file is removed and the original exception propagates.

    Args:
        path: Destination file.
        data: Text content, written as UTF-8.
        mode: Optional permission bits applied to the temp file before any
            content is written (``0o600`` for secrets).

    Raises:
        OSError: If the file cannot be written.
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
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# --- Profiles ---


def _profile_path(name: str) -> Path:
    return get_profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    """Return all profile names, sorted alphabetically."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> ProviderProfile:
    """Load and validate a provider profile from disk.

    Args:
        name: Profile name (``<name>.json`` in the profiles directory).

    Raises:
        ConfigError: If the file does not exist, contains invalid JSON, or
            fails validation.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ProviderProfile.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: ProviderProfile) -> None:
    """Persist a profile atomically. The file name comes from ``profile.name``."""
    data = profile.model_dump(mode="json", exclude_none=True)
    atomic_write(_profile_path(profile.name), json.dumps(data, indent=2) + "\n")


def delete_profile(name: str) -> None:
    """Delete a profile's JSON file.

    Raises:
        ConfigError: If the profile does not exist.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    path.unlink()


def profile_exists(name: str) -> bool:
    return _profile_path(name).is_file()


def resolve_profile_name(cli_profile: Optional[str] = None) -> Optional[str]:
    """Pick the active profile name.

    Precedence (high to low): the ``--profile`` CLI flag, then the
    ``CLAUTH_PROFILE`` environment variable. When neither is set and exactly
    one profile exists, that profile is used.

    Returns:
        The profile name, or ``None`` if nothing selects one.
    """
    if cli_profile:
        return cli_profile
    env_profile = os.environ.get(PROFILE_ENV_VAR)
    if env_profile:
        return env_profile
    profiles = list_profiles()
    if len(profiles) == 1:
        return profiles[0]
    return None


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a value from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - anything else -- returned unchanged (a literal value)

    Raises:
        ConfigError: If an ``env:`` or ``file:`` source cannot be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    return source
