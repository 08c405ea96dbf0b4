"""Abstract storage contracts for pending sessions and tokens.

The OAuth core only talks to these two interfaces:

- :class:`SessionStore` -- maps a one-time ``state`` to its
  :class:`~clauth.models.Session` while an authorization is pending.
- :class:`TokenStore` -- maps an application-chosen key (for example
  ``"github.com:octocat"``) to its :class:`~clauth.models.TokenInfo`.

A backend may implement both (see :class:`~clauth.storage.memory.MemoryStore`
and :class:`~clauth.storage.file.FileStore`). Implementations must be safe
for concurrent use from several threads.

Error contract: a missing entry raises
:class:`~clauth.exceptions.NotFoundError`; a backend failure raises
:class:`~clauth.exceptions.StorageError` and is never swallowed. Deleting a
missing entry is a no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from clauth.models import Session, TokenInfo


class SessionStore(ABC):
    """Persists pending authorization sessions, keyed by ``state``."""

    @abstractmethod
    def save(self, session: Session) -> None:
        """Store *session* under ``session.state``.

        Raises:
            StorageError: If the backend fails.
        """
        ...

    @abstractmethod
    def get(self, state: str) -> Session:
        """Return the session stored for *state*.

        Raises:
            NotFoundError: If no session exists for *state*.
            StorageError: If the backend fails.
        """
        ...

    @abstractmethod
    def delete(self, state: str) -> None:
        """Remove the session for *state*. No-op when absent.

        Raises:
            StorageError: If the backend fails.
        """
        ...

    def pop(self, state: str) -> Session:
        """Return and remove the session for *state*.

        The default implementation is ``get`` followed by ``delete``.
        Backends that can do both atomically should override it so that two
        concurrent callers never receive the same session.

        Raises:
            NotFoundError: If no session exists for *state*.
            StorageError: If the backend fails.
        """
        session = self.get(state)
        self.delete(state)
        return session


class TokenStore(ABC):
    """Persists token material, keyed by an application-defined string."""

    @abstractmethod
    def save(self, key: str, token: TokenInfo) -> None:
        """Store *token* under *key*, replacing any previous value.

        Raises:
            StorageError: If the backend fails.
        """
        ...

    @abstractmethod
    def get(self, key: str) -> TokenInfo:
        """Return the token stored under *key*.

        Raises:
            NotFoundError: If no token exists for *key*.
            StorageError: If the backend fails.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the token under *key*. No-op when absent.

        Raises:
            StorageError: If the backend fails.
        """
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all stored token keys, sorted."""
        ...
