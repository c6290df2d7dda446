"""Secure storage for the serialised authentication session.

The store holds one opaque string per ``(service, account)`` pair. Three
variants implement the :class:`CredentialStore` interface:

* :class:`KeyringCredentialStore` -- the OS keychain (macOS Keychain,
  Windows Credential Locker, Secret Service) through :mod:`keyring`.
* :class:`FileCredentialStore` -- one JSON file per entry under
  ``<data_dir>/credentials/``, written atomically with ``0o600``
  permissions, for headless hosts without a keychain.
* :class:`MemoryCredentialStore` -- a process-local mapping used by tests.

Platform failures are never allowed to escape raw: they are wrapped in an
:class:`~uxlint.exceptions.AuthenticationError` with code
``KEYCHAIN_ERROR``.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import keyring
import keyring.errors
from keyring.backends import chainer, fail

from uxlint.config import get_data_dir
from uxlint.exceptions import AuthenticationError, AuthErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CredentialStore(ABC):
    """Capability interface for storing one secret string per service/account."""

    @abstractmethod
    async def get_password(self, service: str, account: str) -> Optional[str]:
        """Return the stored value, or ``None`` when nothing is stored."""

    @abstractmethod
    async def set_password(self, service: str, account: str, value: str) -> None:
        """Store *value*, replacing any previous value."""

    @abstractmethod
    async def delete_password(self, service: str, account: str) -> bool:
        """Delete the entry. Returns ``True`` iff something was deleted."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether the backing storage can be used on this host."""


# --- OS keychain ---


class KeyringCredentialStore(CredentialStore):
    """OS keychain-backed store.

    :mod:`keyring` is synchronous and some backends block on D-Bus or a
    user prompt, so every call runs in the default executor.
    """

    async def _call(self, action: str, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except keyring.errors.KeyringError as exc:
            logger.error("Keychain %s failed: %s", action, type(exc).__name__)
            raise AuthenticationError(
                AuthErrorCode.KEYCHAIN_ERROR,
                f"Failed to {action} credentials in the system keychain",
                cause=exc,
            ) from exc
        except (OSError, RuntimeError) as exc:
            logger.error("Keychain %s failed: %s", action, type(exc).__name__)
            raise AuthenticationError(
                AuthErrorCode.KEYCHAIN_ERROR,
                f"System keychain is unavailable ({action})",
                cause=exc,
            ) from exc

    async def get_password(self, service: str, account: str) -> Optional[str]:
        return await self._call("read", keyring.get_password, service, account)

    async def set_password(self, service: str, account: str, value: str) -> None:
        await self._call("store", keyring.set_password, service, account, value)

    async def delete_password(self, service: str, account: str) -> bool:
        return await self._call("delete", _delete_entry, service, account)

    async def is_available(self) -> bool:
        return keyring_usable()


def _delete_entry(service: str, account: str) -> bool:
    try:
        keyring.delete_password(service, account)
    except keyring.errors.PasswordDeleteError:
        # Nothing stored.
        return False
    return True


def keyring_usable() -> bool:
    """Whether :mod:`keyring` resolved to a real backend on this host."""
    backend = keyring.get_keyring()
    if isinstance(backend, fail.Keyring):
        return False
    if isinstance(backend, chainer.ChainerBackend) and not backend.backends:
        return False
    return True


# --- Permission-restricted file ---


def _credentials_dir() -> Path:
    """Return the credentials directory, creating it if needed."""
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class FileCredentialStore(CredentialStore):
    """Store each entry as a ``0o600`` JSON file.

    File names are derived from a hash of ``service:account`` so arbitrary
    service and account strings map to safe names.

    Args:
        base_dir: Directory holding the files. Defaults to
            ``<data_dir>/credentials``.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        if self._base_dir is None:
            self._base_dir = _credentials_dir()
        return self._base_dir

    def path_for(self, service: str, account: str) -> Path:
        """The file path backing ``(service, account)``."""
        digest = hashlib.sha256(f"{service}:{account}".encode("utf-8")).hexdigest()[:32]
        return self.base_dir / f"{digest}.json"

    async def get_password(self, service: str, account: str) -> Optional[str]:
        path = self.path_for(service, account)
        if not path.is_file():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise AuthenticationError(
                AuthErrorCode.KEYCHAIN_ERROR,
                f"Failed to read credentials from {path}",
                cause=exc,
            ) from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            # Surface the raw text so the caller's corruption handling applies.
            return text
        value = data.get("value") if isinstance(data, dict) else None
        return value if isinstance(value, str) else text

    async def set_password(self, service: str, account: str, value: str) -> None:
        path = self.path_for(service, account)
        text = json.dumps({"service": service, "account": account, "value": value}) + "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(path, text)
        except OSError as exc:
            raise AuthenticationError(
                AuthErrorCode.KEYCHAIN_ERROR,
                f"Failed to write credentials to {path}",
                cause=exc,
            ) from exc

    async def delete_password(self, service: str, account: str) -> bool:
        path = self.path_for(service, account)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise AuthenticationError(
                AuthErrorCode.KEYCHAIN_ERROR,
                f"Failed to delete credentials at {path}",
                cause=exc,
            ) from exc
        return True

    async def is_available(self) -> bool:
        try:
            return os.access(self.base_dir, os.W_OK)
        except OSError:
            return False


def _atomic_write(path: Path, text: str) -> None:
    """Write *text* to *path* via a ``0o600`` temp file and ``os.replace``."""
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
        # Set restrictive permissions before writing content
        os.chmod(tmp_path, 0o600)
        fd.write(text)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- In-memory ---


class MemoryCredentialStore(CredentialStore):
    """Process-local store keyed by ``"service:account"``.

    Args:
        available: Value reported by :meth:`is_available`.
    """

    def __init__(self, available: bool = True) -> None:
        self._entries: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._available = available

    @staticmethod
    def _key(service: str, account: str) -> str:
        return f"{service}:{account}"

    @property
    def entries(self) -> dict[str, str]:
        """A copy of the stored entries."""
        return dict(self._entries)

    async def get_password(self, service: str, account: str) -> Optional[str]:
        async with self._lock:
            return self._entries.get(self._key(service, account))

    async def set_password(self, service: str, account: str, value: str) -> None:
        async with self._lock:
            self._entries[self._key(service, account)] = value

    async def delete_password(self, service: str, account: str) -> bool:
        async with self._lock:
            return self._entries.pop(self._key(service, account), None) is not None

    async def is_available(self) -> bool:
        return self._available

    def clear(self) -> None:
        self._entries.clear()


# --- Factory ---


def create_credential_store(backend: str = "keyring") -> CredentialStore:
    """Build the credential store for *backend*.

    Args:
        backend: ``"keyring"``, ``"file"``, or ``"auto"`` (keyring when a
            usable keychain exists, the file store otherwise).

    Raises:
        ValueError: For an unknown backend name.
    """
    if backend == "keyring":
        return KeyringCredentialStore()
    if backend == "file":
        return FileCredentialStore()
    if backend == "auto":
        if keyring_usable():
            return KeyringCredentialStore()
        logger.info("No usable system keychain; falling back to file credential store")
        return FileCredentialStore()
    raise ValueError(f"Unknown credential store backend: {backend!r}")
