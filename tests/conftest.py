"""Shared test fixtures for clauth.

Provides ready-made clients over memory stores, isolated XDG config
directories, and output state management. The test doubles behind them
live in ``helpers.py``. Discovered automatically by pytest.
"""

from __future__ import annotations

from pathlib import Path

import keyring
import pytest
from helpers import (
    AUTHORIZE_URL,
    DEVICE_URL,
    REDIRECT_URI,
    TOKEN_URL,
    FakeClock,
    MemoryKeyring,
    ScriptedTransport,
)

from clauth.client import OAuthClient
from clauth.models import OAuthConfig
from clauth.output import OutputFormat, OutputManager, reset_output, set_output
from clauth.storage import MemoryStore


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time; after
    CliRunner restores the real streams those references are stale.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def oauth_config() -> OAuthConfig:
    return OAuthConfig(
        client_id="test-client",
        authorization_endpoint=AUTHORIZE_URL,
        token_endpoint=TOKEN_URL,
        device_authorization_endpoint=DEVICE_URL,
        redirect_uri=REDIRECT_URI,
        scope="read write",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def client(
    oauth_config: OAuthConfig,
    store: MemoryStore,
    transport: ScriptedTransport,
    clock: FakeClock,
) -> OAuthClient:
    """OAuthClient over memory stores, a scripted transport and a fake clock.

    Tests add responses with ``transport.script.append(...)``.
    """
    return OAuthClient(oauth_config, store.sessions, store.tokens, transport, clock=clock)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME below tmp_path, forces the XDG
    layout on every platform, and clears ``CLAUTH_PROFILE`` and
    ``XDG_RUNTIME_DIR`` so refresh locks land under the data directory.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("clauth.config._is_xdg_platform", lambda: True)
    monkeypatch.delenv("CLAUTH_PROFILE", raising=False)
    monkeypatch.delenv("XDG_RUNTIME_DIR", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN, quiet OutputManager for tests that ignore diagnostics."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Keyring fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_keyring() -> MemoryKeyring:
    """Install an in-process keyring backend for the test, then restore the previous one."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)
