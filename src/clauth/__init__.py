"""clauth -- OAuth 2.0 for command-line and headless applications.

Implements the Authorization Code flow with PKCE (:rfc:`7636`) and the
Device Authorization flow (:rfc:`8628`) on top of pluggable session and
token stores, plus a single-flight refresher that lets any number of
threads share one token without stampeding the token endpoint.

Typical library use::

    from clauth import MemoryStore, OAuthClient, TokenRefresher
    from clauth.presets import github

    store = MemoryStore()
    client = OAuthClient(github("Iv1.abc123", scope="repo"), store.sessions, store.tokens)
    client.save_token("gh", client.authorize_device(on_prompt=print))
    token = TokenRefresher(client).get_valid("gh")

The ``clauth`` console script wraps the same API with saved provider
profiles (``clauth profile add``, ``clauth auth login``, ``clauth auth token``).

Modules:
    client: OAuthClient for both grant types.
    device: Device flow polling state machine.
    refresher: Single-flight TokenRefresher.
    lock: Cross-process refresh locks.
    token: Token entity and token-response parsing.
    pkce: PKCE pairs and CSRF state tokens.
    storage: Store contracts, memory, file and keyring backends.
    transport: HTTP seam and the httpx transport.
    callback: Loopback redirect receiver.
    presets: Well-known provider configurations.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and profile management.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"

from clauth.client import OAuthClient  # noqa: E402
from clauth.lock import RefreshLockManager  # noqa: E402
from clauth.models import (  # noqa: E402
    AuthFlowResult,
    DeviceAuthorization,
    OAuthConfig,
    PKCEPair,
    Session,
    TokenInfo,
)
from clauth.refresher import TokenRefresher  # noqa: E402
from clauth.storage import (  # noqa: E402
    FileStore,
    KeyringStore,
    MemoryStore,
    SessionStore,
    TokenStore,
)
from clauth.token import Token  # noqa: E402

__all__ = [
    "AuthFlowResult",
    "DeviceAuthorization",
    "FileStore",
    "KeyringStore",
    "MemoryStore",
    "OAuthClient",
    "OAuthConfig",
    "PKCEPair",
    "RefreshLockManager",
    "Session",
    "SessionStore",
    "Token",
    "TokenInfo",
    "TokenRefresher",
    "TokenStore",
    "__version__",
]
