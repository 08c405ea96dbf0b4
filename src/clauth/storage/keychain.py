"""OS keychain token store backed by the ``keyring`` library.

Tokens live in the platform credential store (macOS Keychain, Windows
Credential Locker, Secret Service on Linux) under service ``clauth``, one
entry per key holding the JSON-serialised :class:`~clauth.models.TokenInfo`.

Keyring backends cannot enumerate their entries, so the store keeps its own
index of keys in one extra entry (:data:`INDEX_ENTRY`). Pending PKCE sessions
are short-lived and stay on disk; :class:`KeyringStore` pairs this token
store with a :class:`~clauth.storage.file.FileSessionStore`.

Every backend failure, including a missing backend, surfaces as
:class:`~clauth.exceptions.StorageError`.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import ValidationError

from clauth.config import get_data_dir
from clauth.exceptions import InvalidArgumentError, NotFoundError, StorageError
from clauth.models import TokenInfo
from clauth.storage.base import TokenStore
from clauth.storage.file import FileSessionStore

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "clauth"
INDEX_ENTRY = "__clauth_index__"


class KeyringTokenStore(TokenStore):
    """:class:`TokenStore` keeping each token in the OS keychain.

    Args:
        service: Keyring service name the entries are filed under.
    """

    def __init__(self, service: str = DEFAULT_SERVICE) -> None:
        self.service = service
        self._lock = threading.Lock()

    def _check_key(self, key: str) -> None:
        if key == INDEX_ENTRY:
            raise InvalidArgumentError(f"'{INDEX_ENTRY}' is reserved by the keyring store")

    def _read_index(self) -> list[str]:
        try:
            raw = keyring.get_password(self.service, INDEX_ENTRY)
        except KeyringError as exc:
            raise StorageError(f"Cannot read keyring index for '{self.service}': {exc}") from exc
        if raw is None:
            return []
        try:
            keys = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt keyring index for '{self.service}': {exc}") from exc
        if not isinstance(keys, list):
            raise StorageError(f"Corrupt keyring index for '{self.service}'")
        return [str(k) for k in keys]

    def _write_index(self, keys: list[str]) -> None:
        try:
            keyring.set_password(self.service, INDEX_ENTRY, json.dumps(sorted(keys)))
        except KeyringError as exc:
            raise StorageError(f"Cannot write keyring index for '{self.service}': {exc}") from exc

    def save(self, key: str, token: TokenInfo) -> None:
        self._check_key(key)
        text = json.dumps(token.model_dump(mode="json"))
        with self._lock:
            try:
                keyring.set_password(self.service, key, text)
            except KeyringError as exc:
                raise StorageError(f"Cannot save token '{key}' to keyring: {exc}") from exc
            keys = self._read_index()
            if key not in keys:
                self._write_index(keys + [key])
        logger.debug("Saved token for key '%s' to keyring", key)

    def get(self, key: str) -> TokenInfo:
        self._check_key(key)
        try:
            raw = keyring.get_password(self.service, key)
        except KeyringError as exc:
            raise StorageError(f"Cannot read token '{key}' from keyring: {exc}") from exc
        if raw is None:
            raise NotFoundError(f"No token stored for key '{key}'")
        try:
            return TokenInfo.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StorageError(f"Corrupt keyring entry for '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        self._check_key(key)
        with self._lock:
            try:
                keyring.delete_password(self.service, key)
            except PasswordDeleteError:
                # already absent
                pass
            except KeyringError as exc:
                raise StorageError(f"Cannot delete token '{key}' from keyring: {exc}") from exc
            else:
                logger.debug("Deleted token for key '%s' from keyring", key)
            keys = self._read_index()
            if key in keys:
                self._write_index([k for k in keys if k != key])

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._read_index())


class KeyringStore:
    """Keychain tokens plus file-backed pending sessions.

    Args:
        directory: Root for the ``sessions/`` directory. Defaults to the
            XDG data directory.
        service: Keyring service name.
    """

    def __init__(self, directory: Optional[Path] = None, service: str = DEFAULT_SERVICE) -> None:
        self.directory = directory if directory is not None else get_data_dir()
        self.sessions = FileSessionStore(self.directory / "sessions")
        self.tokens = KeyringTokenStore(service)
