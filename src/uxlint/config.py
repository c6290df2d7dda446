"""Configuration management: XDG paths and environment-sourced OAuth settings.

This module handles all process-wide configuration for uxlint:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.uxlint/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **OAuth configuration** -- :func:`load_oauth_config` builds the
  :class:`~uxlint.models.OAuthConfig` from environment variables, after
  loading a ``.env`` file from the working directory if one exists.
* **Credential backend selection** -- :func:`get_credential_backend` reads
  ``UXLINT_CREDENTIAL_STORE``.
* **Fail-fast validation** -- :func:`require_client_id` raises a
  descriptive ``INVALID_CONFIG`` error when no client ID is configured.

Environment variables::

    UXLINT_CLOUD_CLIENT_ID       OAuth client ID (required for login)
    UXLINT_CLOUD_API_BASE_URL    Identity provider base URL
    UXLINT_CLOUD_REDIRECT_URI    Loopback redirect URI
    UXLINT_CREDENTIAL_STORE      keyring | file | auto
"""

from __future__ import annotations

import logging
import os
import platform
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from uxlint.exceptions import AuthenticationError, AuthErrorCode, ConfigError
from uxlint.models import OAuthConfig

logger = logging.getLogger(__name__)

_APP_NAME = "uxlint"

ENV_CLIENT_ID = "UXLINT_CLOUD_CLIENT_ID"
ENV_BASE_URL = "UXLINT_CLOUD_API_BASE_URL"
ENV_REDIRECT_URI = "UXLINT_CLOUD_REDIRECT_URI"
ENV_CREDENTIAL_STORE = "UXLINT_CREDENTIAL_STORE"

CREDENTIAL_BACKENDS = ("keyring", "file", "auto")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory layout (Linux/FreeBSD)."""
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/uxlint/`` (default ``~/.config/uxlint/``).
    On macOS/Windows: ``~/.uxlint/``.

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
    """Return the data directory (logs, crash reports, file credentials), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/uxlint/`` (default ``~/.local/share/uxlint/``).
    On macOS/Windows: ``~/.uxlint/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_logs_dir() -> Path:
    """Return ``<data_dir>/logs/``, creating it if necessary."""
    path = get_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- OAuth configuration ---


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load a ``.env`` file into ``os.environ`` without overriding existing values.

    Args:
        path: File to load. Defaults to ``./.env``.

    Returns:
        ``True`` if a file was found and loaded.
    """
    env_path = path or Path.cwd() / ".env"
    if not env_path.is_file():
        logger.debug(".env file not found at %s, using environment only", env_path)
        return False
    load_dotenv(dotenv_path=env_path, override=False)
    logger.debug("Loaded environment variables from %s", env_path)
    return True


def load_oauth_config(env: Optional[Mapping[str, str]] = None) -> OAuthConfig:
    """Build the process-wide :class:`~uxlint.models.OAuthConfig`.

    Precedence (high to low):
        1. Values in *env* (or ``os.environ`` when *env* is ``None``; a
           ``.env`` file in the working directory is merged into
           ``os.environ`` first without overriding real variables)
        2. Built-in defaults on :class:`~uxlint.models.OAuthConfig`

    A blank client ID is accepted here; :func:`require_client_id` rejects it
    at the point where it is actually needed so that read-only commands
    such as ``uxlint auth status`` keep working.

    Args:
        env: Mapping to read variables from. Mainly useful in tests.

    Returns:
        The resolved configuration.
    """
    if env is None:
        load_env_file()
        env = os.environ

    overrides: dict[str, str] = {}
    client_id = env.get(ENV_CLIENT_ID)
    if client_id is not None:
        overrides["client_id"] = client_id.strip()
    base_url = env.get(ENV_BASE_URL)
    if base_url:
        overrides["base_url"] = base_url.strip()
    redirect_uri = env.get(ENV_REDIRECT_URI)
    if redirect_uri:
        overrides["redirect_uri"] = redirect_uri.strip()

    return OAuthConfig(**overrides)


def require_client_id(config: OAuthConfig) -> str:
    """Return the configured client ID or fail fast.

    Raises:
        AuthenticationError: ``INVALID_CONFIG`` when the client ID is blank.
    """
    if not config.client_id.strip():
        raise AuthenticationError(
            AuthErrorCode.INVALID_CONFIG,
            f"Missing OAuth client ID. Set {ENV_CLIENT_ID} in your environment.",
        )
    return config.client_id


def get_credential_backend(env: Optional[Mapping[str, str]] = None) -> str:
    """Return the credential store backend selected via ``UXLINT_CREDENTIAL_STORE``.

    Returns:
        One of ``"keyring"`` (default), ``"file"``, or ``"auto"``.

    Raises:
        ConfigError: If the variable holds an unknown backend name.
    """
    source = os.environ if env is None else env
    value = source.get(ENV_CREDENTIAL_STORE, "keyring").strip().lower() or "keyring"
    if value not in CREDENTIAL_BACKENDS:
        raise ConfigError(
            f"Unknown credential store '{value}' in {ENV_CREDENTIAL_STORE}. "
            f"Expected one of: {', '.join(CREDENTIAL_BACKENDS)}"
        )
    return value
