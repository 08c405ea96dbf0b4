"""In-memory reference implementations of the storage contracts.

Suitable for tests, short-lived processes, and as the model other backends
are checked against. Values are frozen pydantic models, so handing out the
stored instance never lets a caller mutate the store.
"""

from __future__ import annotations

import threading

from clauth.exceptions import NotFoundError
from clauth.models import Session, TokenInfo
from clauth.storage.base import SessionStore, TokenStore


class MemorySessionStore(SessionStore):
    """Dict-backed :class:`SessionStore` guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.state] = session

    def get(self, state: str) -> Session:
        with self._lock:
            session = self._sessions.get(state)
        if session is None:
            raise NotFoundError(f"No pending session for state {state[:8]}...")
        return session

    def delete(self, state: str) -> None:
        with self._lock:
            self._sessions.pop(state, None)

    def pop(self, state: str) -> Session:
        with self._lock:
            session = self._sessions.pop(state, None)
        if session is None:
            raise NotFoundError(f"No pending session for state {state[:8]}...")
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class MemoryTokenStore(TokenStore):
    """Dict-backed :class:`TokenStore` guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, TokenInfo] = {}

    def save(self, key: str, token: TokenInfo) -> None:
        with self._lock:
            self._tokens[key] = token

    def get(self, key: str) -> TokenInfo:
        with self._lock:
            token = self._tokens.get(key)
        if token is None:
            raise NotFoundError(f"No token stored for key '{key}'")
        return token

    def delete(self, key: str) -> None:
        with self._lock:
            self._tokens.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._tokens)


class MemoryStore:
    """Both in-memory stores bundled in one object.

    Example::

        store = MemoryStore()
        client = OAuthClient(config, store.sessions, store.tokens)
    """

    def __init__(self) -> None:
        self.sessions = MemorySessionStore()
        self.tokens = MemoryTokenStore()
