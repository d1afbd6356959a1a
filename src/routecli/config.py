"""Settings management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration of generated CLIs. Each
CLI is keyed by its :attr:`ApiInfo.name <routecli.models.ApiInfo.name>`:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.<name>/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- one :class:`~routecli.models.Settings` JSON file per CLI,
  with optional named profiles. Managed via :func:`load_settings` and
  :func:`save_settings`.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, the selected profile, the top-level settings, and
  the declared defaults into the effective configuration.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or an interactive prompt.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from routecli.exceptions import ConfigError
from routecli.models import ApiInfo, Settings

_APP_NAME = "routecli"
_SETTINGS_FILENAME = "settings.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir(app_name: str) -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{app_name}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir(app_name: str = _APP_NAME) -> Path:
    """Return the configuration directory of *app_name*, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/<app_name>/`` (default
    ``~/.config/<app_name>/``). On macOS/Windows: ``~/.<app_name>/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / app_name
    else:
        path = _fallback_base_dir(app_name)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir(app_name: str = _APP_NAME) -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/<app_name>/`` (default
    ``~/.local/share/<app_name>/``). On macOS/Windows: ``~/.<app_name>/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / app_name
    else:
        path = _fallback_base_dir(app_name) / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.
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


# --- Settings ---


def settings_path(app_name: str) -> Path:
    """Path to the settings file of *app_name*."""
    return get_config_dir(app_name) / _SETTINGS_FILENAME


def load_settings(app_name: str) -> Settings:
    """Load the settings of *app_name* from its config directory.

    Returns:
        The deserialised :class:`~routecli.models.Settings`. If the file
        does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = settings_path(app_name)
    if not path.is_file():
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Settings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(app_name: str, settings: Settings) -> None:
    """Persist the settings of *app_name* atomically to disk."""
    data = settings.model_dump(mode="json", exclude_none=True)
    _atomic_write(settings_path(app_name), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def env_overrides(prefix: str) -> dict[str, Any]:
    """Collect ``<PREFIX>_<KEY>`` environment variables as lower-case keys.

    ``<PREFIX>_PROFILE`` selects a profile and is not returned.
    """
    marker = f"{prefix}_"
    overrides: dict[str, Any] = {}
    for name, value in os.environ.items():
        if not name.startswith(marker) or not value:
            continue
        key = name[len(marker):].lower()
        if key and key != "profile":
            overrides[key] = value
    return overrides


def resolve_settings(
    info: ApiInfo,
    cli_profile: Optional[str] = None,
    cli_base_url: Optional[str] = None,
) -> Settings:
    """Resolve the effective settings of a generated CLI.

    Precedence (high to low):
        1. CLI flags (``--base-url``; ``--profile`` selects the profile)
        2. Environment variables (``<PREFIX>_BASE_URL``, ``<PREFIX>_AUTH_TOKEN``,
           ...; ``<PREFIX>_PROFILE`` selects the profile)
        3. The selected profile section of the settings file
        4. Top-level values of the settings file
        5. Declared defaults (:attr:`ApiInfo.base_url`)

    Returns:
        The merged :class:`~routecli.models.Settings` (without profiles).

    Raises:
        ConfigError: If the selected profile does not exist or the merged
            values are invalid.
    """
    stored = load_settings(info.name)
    prefix = info.resolved_env_prefix

    merged: dict[str, Any] = {"base_url": info.base_url}
    # model_dump includes extra keys kept for authenticators
    top_level = stored.model_dump(exclude={"profiles"})
    merged.update({key: value for key, value in top_level.items() if value is not None})

    profile_name = cli_profile or os.environ.get(f"{prefix}_PROFILE") or None
    if profile_name is not None:
        section = stored.profiles.get(profile_name)
        if section is None:
            available = ", ".join(sorted(stored.profiles)) or "(none)"
            raise ConfigError(
                f"Profile '{profile_name}' not found in {settings_path(info.name)}. "
                f"Available profiles: {available}"
            )
        merged.update(_merge_section(merged, section))

    merged.update(env_overrides(prefix))
    if cli_base_url is not None:
        merged["base_url"] = cli_base_url

    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def _merge_section(base: dict[str, Any], section: dict[str, Any]) -> dict[str, Any]:
    """Overlay a profile section, merging the nested ``request`` table."""
    result = dict(section)
    if isinstance(section.get("request"), dict) and isinstance(base.get("request"), dict):
        result["request"] = {**base["request"], **section["request"]}
    return result


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)
        - anything else -- used verbatim

    Args:
        source: The source descriptor string.

    Returns:
        The resolved credential string.

    Raises:
        ConfigError: If the source can't be resolved.
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

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter credential: ")

    return source
