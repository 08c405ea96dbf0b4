"""File-backed session and token stores.

Layout under the store directory (default ``<data_dir>/``)::

    sessions/<percent-encoded state>.json
    tokens/<percent-encoded key>.json

Every file holds one serialised model and is written atomically through
:func:`clauth.config.atomic_write` with ``0o600`` permissions, so secrets are
never world-readable, even momentarily. Keys are percent-encoded into file
names so arbitrary strings such as ``"github.com:octocat"`` are safe.

Unlike a best-effort cache, these stores never hide failures: unreadable or
corrupt files raise :class:`~clauth.exceptions.StorageError`.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel, ValidationError

from clauth.config import atomic_write, get_data_dir
from clauth.exceptions import NotFoundError, StorageError
from clauth.models import Session, TokenInfo
from clauth.storage.base import SessionStore, TokenStore

logger = logging.getLogger(__name__)

_SUFFIX = ".json"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _encode_name(key: str) -> str:
    return quote(key, safe="") + _SUFFIX


def _decode_name(filename: str) -> str:
    return unquote(filename[: -len(_SUFFIX)])


class _JsonDirectory:
    """One JSON document per key inside a directory, guarded by a lock."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / _encode_name(key)

    def write(self, key: str, model: BaseModel) -> None:
        text = json.dumps(model.model_dump(mode="json"), indent=2) + "\n"
        with self._lock:
            try:
                atomic_write(self._path(key), text, mode=0o600)
            except OSError as exc:
                raise StorageError(f"Cannot write {self._path(key)}: {exc}") from exc

    def read(self, key: str, model_cls: type[ModelT]) -> Optional[ModelT]:
        path = self._path(key)
        with self._lock:
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except OSError as exc:
                raise StorageError(f"Cannot read {path}: {exc}") from exc
        try:
            return model_cls.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StorageError(f"Corrupt store entry at {path}: {exc}") from exc

    def remove(self, key: str) -> bool:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise StorageError(f"Cannot delete {path}: {exc}") from exc
        return True

    def take(self, key: str, model_cls: type[ModelT]) -> Optional[ModelT]:
        """Read and delete *key* as one step under the directory lock."""
        path = self._path(key)
        with self._lock:
            try:
                text = path.read_text(encoding="utf-8")
                path.unlink()
            except FileNotFoundError:
                return None
            except OSError as exc:
                raise StorageError(f"Cannot consume {path}: {exc}") from exc
        try:
            return model_cls.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StorageError(f"Corrupt store entry at {path}: {exc}") from exc

    def list_keys(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        try:
            names = os.listdir(self.directory)
        except OSError as exc:
            raise StorageError(f"Cannot list {self.directory}: {exc}") from exc
        return sorted(
            _decode_name(name)
            for name in names
            if name.endswith(_SUFFIX) and not name.startswith(".")
        )


class FileSessionStore(SessionStore):
    """:class:`SessionStore` writing one file per pending state."""

    def __init__(self, directory: Path) -> None:
        self._files = _JsonDirectory(directory)

    def save(self, session: Session) -> None:
        self._files.write(session.state, session)

    def get(self, state: str) -> Session:
        session = self._files.read(state, Session)
        if session is None:
            raise NotFoundError(f"No pending session for state {state[:8]}...")
        return session

    def delete(self, state: str) -> None:
        self._files.remove(state)

    def pop(self, state: str) -> Session:
        session = self._files.take(state, Session)
        if session is None:
            raise NotFoundError(f"No pending session for state {state[:8]}...")
        return session


class FileTokenStore(TokenStore):
    """:class:`TokenStore` writing one file per key."""

    def __init__(self, directory: Path) -> None:
        self._files = _JsonDirectory(directory)

    @property
    def directory(self) -> Path:
        return self._files.directory

    def save(self, key: str, token: TokenInfo) -> None:
        self._files.write(key, token)
        logger.debug("Saved token for key '%s'", key)

    def get(self, key: str) -> TokenInfo:
        token = self._files.read(key, TokenInfo)
        if token is None:
            raise NotFoundError(f"No token stored for key '{key}'")
        return token

    def delete(self, key: str) -> None:
        if self._files.remove(key):
            logger.debug("Deleted token for key '%s'", key)

    def keys(self) -> list[str]:
        return self._files.list_keys()


class FileStore:
    """File-backed session and token stores sharing one root directory.

    Args:
        directory: Root directory. Defaults to the XDG data directory
            (typically ``~/.local/share/clauth/``).

    Example::

        store = FileStore(tmp_path)
        store.tokens.save("gh", TokenInfo(access_token="tok"))
        assert (tmp_path / "tokens" / "gh.json").is_file()
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self.directory = directory if directory is not None else get_data_dir()
        self.sessions = FileSessionStore(self.directory / "sessions")
        self.tokens = FileTokenStore(self.directory / "tokens")
