"""Test doubles shared across the suite.

A scripted in-memory :class:`~clauth.transport.Transport`, a manually
advanced clock, response builders, and in-process ``keyring`` backends. Importable from any test module
because ``tests/`` is on the pytest ``pythonpath``.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Union

from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from clauth.transport import Transport, TransportResponse

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

TOKEN_URL = "https://auth.example.com/token"
AUTHORIZE_URL = "https://auth.example.com/authorize"
DEVICE_URL = "https://auth.example.com/device/code"
REDIRECT_URI = "http://127.0.0.1:8765/callback"

ScriptItem = Union[TransportResponse, BaseException, Callable[[str, dict], TransportResponse]]


def ok(**fields: Any) -> TransportResponse:
    """A 200 response with the given body fields."""
    return TransportResponse(status_code=200, fields=fields)


def oauth_error(error: str, status_code: int = 400, **fields: Any) -> TransportResponse:
    """An OAuth error response (``{"error": ...}``)."""
    return TransportResponse(status_code=status_code, fields={"error": error, **fields})


class ScriptedTransport(Transport):
    """Transport that replays scripted responses and records every request.

    Each script item is a :class:`TransportResponse`, an exception to raise,
    or a callable ``(url, data) -> TransportResponse``. When the script runs
    out, the last item repeats.

    Args:
        script: Responses in call order.
        delay: Seconds each call blocks, to widen race windows.
    """

    def __init__(self, script: list[ScriptItem] | None = None, delay: float = 0.0) -> None:
        self.script = list(script or [])
        self.delay = delay
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.closed = False
        self._lock = threading.Lock()

    def post(self, url: str, data: dict[str, str]) -> TransportResponse:
        with self._lock:
            self.calls.append((url, dict(data)))
            index = min(len(self.calls), len(self.script)) - 1
            item = self.script[index]
        if self.delay:
            time.sleep(self.delay)
        if isinstance(item, BaseException):
            raise item
        if callable(item) and not isinstance(item, TransportResponse):
            return item(url, data)
        return item

    def close(self) -> None:
        self.closed = True

    def calls_to(self, url: str) -> list[dict[str, str]]:
        return [data for called, data in self.calls if called == url]


class FakeClock:
    """Manually advanced UTC clock; :meth:`sleep` advances it and records the duration."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class MemoryKeyring(KeyringBackend):
    """Keyring backend holding passwords in a dict, for ``keyring.set_keyring``."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found") from None


class LockedKeyring(KeyringBackend):
    """Keyring backend that fails every call, like a locked keychain."""

    priority = 1

    def get_password(self, service: str, username: str) -> str | None:
        raise KeyringError("keychain is locked")

    def set_password(self, service: str, username: str, password: str) -> None:
        raise KeyringError("keychain is locked")

    def delete_password(self, service: str, username: str) -> None:
        raise KeyringError("keychain is locked")
