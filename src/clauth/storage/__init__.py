"""Storage contracts and the bundled memory, file and keyring backends."""

from clauth.storage.base import SessionStore, TokenStore
from clauth.storage.file import FileSessionStore, FileStore, FileTokenStore
from clauth.storage.keychain import KeyringStore, KeyringTokenStore
from clauth.storage.memory import MemorySessionStore, MemoryStore, MemoryTokenStore

__all__ = [
    "FileSessionStore",
    "FileStore",
    "FileTokenStore",
    "KeyringStore",
    "KeyringTokenStore",
    "MemorySessionStore",
    "MemoryStore",
    "MemoryTokenStore",
    "SessionStore",
    "TokenStore",
]
