"""OAuth 2.0 client: Authorization Code + PKCE and Device Authorization flows.

:class:`OAuthClient` drives both grant types against one provider
configuration:

Authorization Code with PKCE (:rfc:`6749` section 4.1, :rfc:`7636`):
    1. :meth:`OAuthClient.start_flow` creates a PKCE pair and a CSRF
       ``state``, records them in the session store and returns the
       authorization URL. No network traffic.
    2. The user's browser returns to the redirect URI with ``code`` and
       ``state``.
    3. :meth:`OAuthClient.exchange_code` consumes the session (exactly once)
       and trades the code for a :class:`~clauth.models.TokenInfo`.

    :meth:`OAuthClient.authorize` runs all three steps for a CLI, using a
    loopback :class:`~clauth.callback.CallbackServer`.

Device Authorization (:rfc:`8628`):
    :meth:`OAuthClient.request_device_authorization`, then
    :meth:`OAuthClient.poll_device_token`; :meth:`OAuthClient.authorize_device`
    combines both with a prompt callback.

Obtaining a token never writes the token store. Callers pick a key and call
:meth:`OAuthClient.save_token`, so a token is only persisted once the
application has decided what it belongs to.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from urllib.parse import urlencode, urlparse

from clauth.callback import CallbackServer
from clauth.device import DevicePoller, device_authorization_from_response
from clauth.exceptions import (
    AuthorizationDeniedError,
    InvalidArgumentError,
    NotFoundError,
)
from clauth.models import (
    AuthFlowResult,
    DeviceAuthorization,
    OAuthConfig,
    Session,
    TokenInfo,
    utcnow,
)
from clauth.pkce import generate_pkce_pair, generate_state
from clauth.storage.base import SessionStore, TokenStore
from clauth.token import token_info_from_response
from clauth.transport import HttpxTransport, Transport, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 600
"""Seconds a pending authorization stays redeemable."""


def _open_browser(url: str) -> None:
    """Open *url* in the system browser from a daemon thread.

    A missing or failing browser is logged and otherwise ignored: the URL
    has already been shown to the user.
    """

    def _open() -> None:
        try:
            if not webbrowser.open(url):
                logger.warning("No browser available; open the URL manually")
        except webbrowser.Error as exc:
            logger.warning("Could not open browser: %s", exc)

    threading.Thread(target=_open, daemon=True).start()


def _denied(response: TransportResponse, context: str) -> AuthorizationDeniedError:
    reason = response.error_description or response.error or f"HTTP {response.status_code}"
    return AuthorizationDeniedError(
        f"{context}: {reason}",
        error_code=response.error,
        description=response.error_description,
    )


class OAuthClient:
    """OAuth 2.0 client for one provider registration.

    Args:
        config: Provider endpoints and client registration.
        session_store: Where pending authorizations are kept.
        token_store: Where :meth:`save_token` persists tokens.
        transport: HTTP transport. Defaults to an :class:`HttpxTransport`
            owned (and closed) by this client.
        session_ttl: Seconds a pending session stays redeemable.
        clock: Returns the current UTC time. Injectable for tests.

    Raises:
        InvalidArgumentError: If *config* fails validation.

    Example::

        store = MemoryStore()
        with OAuthClient(config, store.sessions, store.tokens) as client:
            flow = client.start_flow()
            ...  # user authorizes, callback delivers code + state
            token = client.exchange_code(state, code)
            client.save_token("github.com:me", token)
    """

    def __init__(
        self,
        config: OAuthConfig,
        session_store: SessionStore,
        token_store: TokenStore,
        transport: Optional[Transport] = None,
        *,
        session_ttl: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        errors = config.validate_config()
        if errors:
            raise InvalidArgumentError("Invalid OAuth configuration: " + "; ".join(errors))
        self.config = config
        self.session_store = session_store
        self.token_store = token_store
        self._owns_transport = transport is None
        self.transport: Transport = transport or HttpxTransport()
        self.session_ttl = session_ttl
        self.clock = clock

    # --- Authorization Code + PKCE ---

    def start_flow(self) -> AuthFlowResult:
        """Begin an authorization: create and store a session, build the URL.

        Returns:
            The authorization URL to open and the ``state`` it carries.

        Raises:
            InvalidArgumentError: If no ``redirect_uri`` is configured.
            StorageError: If the session cannot be saved.
        """
        if not self.config.redirect_uri:
            raise InvalidArgumentError("start_flow requires 'redirect_uri' in the OAuth config")

        pkce = generate_pkce_pair()
        state = generate_state()
        self.session_store.save(
            Session(state=state, code_verifier=pkce.code_verifier, created_at=self.clock())
        )

        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "code_challenge": pkce.code_challenge,
            "code_challenge_method": pkce.challenge_method,
            "state": state,
        }
        if self.config.scope:
            params["scope"] = self.config.scope

        endpoint = self.config.authorization_endpoint
        separator = "&" if urlparse(endpoint).query else "?"
        url = f"{endpoint}{separator}{urlencode(params)}"
        logger.debug("Started authorization flow, state %s...", state[:8])
        return AuthFlowResult(authorization_url=url, state=state)

    def exchange_code(self, state: str, code: str) -> TokenInfo:
        """Trade an authorization code for tokens.

        The pending session is removed before the network call, so a state
        can be redeemed at most once whatever the outcome.

        Args:
            state: The ``state`` query parameter from the callback.
            code: The ``code`` query parameter from the callback.

        Returns:
            The issued token. The token store is not written.

        Raises:
            AuthorizationDeniedError: If *state* matches no pending session
                (replay, forgery, or a session older than ``session_ttl``),
                or the provider rejects the code.
            UnknownResponseError: If a 2xx response is malformed.
            HttpError: On transport failure.
            StorageError: If the session store fails.
        """
        try:
            session = self.session_store.pop(state)
        except NotFoundError as exc:
            raise AuthorizationDeniedError(
                "Unknown or already used authorization state", error_code="invalid_state"
            ) from exc

        now = self.clock()
        if session.age(now) > timedelta(seconds=self.session_ttl):
            raise AuthorizationDeniedError(
                "Authorization session expired; start a new login", error_code="invalid_state"
            )

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri or "",
            "client_id": self.config.client_id,
            "code_verifier": session.code_verifier,
        }
        response = self.transport.post(self.config.token_endpoint, data)
        if not response.ok:
            raise _denied(response, "Code exchange failed")
        logger.debug("Exchanged authorization code for state %s...", state[:8])
        return token_info_from_response(response.fields, now)

    def authorize(
        self,
        *,
        open_browser: bool = True,
        timeout: float = 120,
        on_url: Optional[Callable[[str], Any]] = None,
    ) -> TokenInfo:
        """Run the full redirect flow through a loopback callback server.

        Args:
            open_browser: Try to open the system browser on the URL.
            timeout: Seconds to wait for the callback.
            on_url: Called with the authorization URL before waiting, so the
                caller can print it.

        Raises:
            InvalidArgumentError: If ``redirect_uri`` is missing, not a
                loopback ``http`` URI, or its port is busy.
            FlowTimeoutError: If no callback arrives within *timeout*.
            AuthorizationDeniedError: If the provider or user denies access.
        """
        if not self.config.redirect_uri:
            raise InvalidArgumentError("authorize requires 'redirect_uri' in the OAuth config")

        with CallbackServer.from_redirect_uri(self.config.redirect_uri) as server:
            flow = self.start_flow()
            if on_url is not None:
                on_url(flow.authorization_url)
            if open_browser:
                _open_browser(flow.authorization_url)
            try:
                result = server.wait_for_callback(timeout)
            except BaseException:
                self.session_store.delete(flow.state)
                raise
        # a callback carrying another state leaves this flow's session behind
        try:
            return self.exchange_code(result.state, result.code)
        finally:
            self.session_store.delete(flow.state)

    # --- Device Authorization ---

    def request_device_authorization(self) -> DeviceAuthorization:
        """Ask the provider for a device code and user code.

        Raises:
            InvalidArgumentError: If no device authorization endpoint is configured.
            AuthorizationDeniedError: If the provider rejects the request.
            UnknownResponseError: If required fields are missing.
            HttpError: On transport failure.
        """
        endpoint = self.config.device_authorization_endpoint
        if not endpoint:
            raise InvalidArgumentError("Provider has no device authorization endpoint")

        data = {"client_id": self.config.client_id}
        if self.config.scope:
            data["scope"] = self.config.scope

        issued_at = self.clock()
        response = self.transport.post(endpoint, data)
        if not response.ok:
            raise _denied(response, "Device authorization request failed")
        return device_authorization_from_response(response.fields, issued_at)

    def poll_device_token(
        self,
        authorization: DeviceAuthorization,
        *,
        sleep: Optional[Callable[[float], Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TokenInfo:
        """Poll the token endpoint until the device grant resolves.

        See :meth:`clauth.device.DevicePoller.run` for the outcomes.
        """
        poller = DevicePoller(
            self.transport,
            self.config.token_endpoint,
            self.config.client_id,
            authorization,
            clock=self.clock,
            sleep=sleep,
            cancel=cancel,
        )
        return poller.run()

    def authorize_device(
        self,
        *,
        on_prompt: Optional[Callable[[DeviceAuthorization], Any]] = None,
        cancel: Optional[threading.Event] = None,
        open_browser: bool = False,
    ) -> TokenInfo:
        """Request a device code, show it to the user, and poll for the token.

        Args:
            on_prompt: Called with the :class:`DeviceAuthorization` so the
                caller can display ``user_code`` and ``verification_uri``.
            cancel: Event that aborts polling.
            open_browser: Also open ``verification_uri_complete`` (or
                ``verification_uri``) locally.
        """
        authorization = self.request_device_authorization()
        if on_prompt is not None:
            on_prompt(authorization)
        if open_browser:
            _open_browser(authorization.verification_uri_complete or authorization.verification_uri)
        return self.poll_device_token(authorization, cancel=cancel)

    # --- Refresh ---

    def refresh(self, refresh_token: str) -> TokenInfo:
        """Exchange a refresh token for a new access token.

        When the provider does not rotate refresh tokens, the old one is kept
        on the returned :class:`TokenInfo`.

        Raises:
            InvalidArgumentError: If *refresh_token* is empty.
            AuthorizationDeniedError: If the provider rejects the refresh token.
            UnknownResponseError: If a 2xx response is malformed.
            HttpError: On transport failure.
        """
        if not refresh_token:
            raise InvalidArgumentError("refresh requires a non-empty refresh token")
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
        }
        issued_at = self.clock()
        response = self.transport.post(self.config.token_endpoint, data)
        if not response.ok:
            raise _denied(response, "Token refresh failed")
        return token_info_from_response(
            response.fields, issued_at, previous_refresh_token=refresh_token
        )

    # --- Token persistence ---

    def save_token(self, key: str, token: TokenInfo) -> None:
        self.token_store.save(key, token)

    def get_token(self, key: str) -> TokenInfo:
        """Return the stored token for *key*.

        Raises:
            NotFoundError: If nothing is stored under *key*.
        """
        return self.token_store.get(key)

    def delete_token(self, key: str) -> None:
        self.token_store.delete(key)

    # --- Lifecycle ---

    def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> OAuthClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
