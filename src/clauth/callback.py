"""Loopback HTTP receiver for the authorization-code redirect.

A :class:`CallbackServer` binds ``127.0.0.1`` on the port of the registered
redirect URI and serves requests one at a time until the provider redirects
the browser to the callback path. Requests for other paths (favicon fetches,
``robots.txt``) get a 404 and are otherwise ignored.

Only loopback ``http`` redirect URIs are accepted (:rfc:`8252` section 7.3);
anything else needs a real web server owned by the application.
"""

from __future__ import annotations

import logging
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, ConfigDict

from clauth.exceptions import (
    AuthorizationDeniedError,
    FlowTimeoutError,
    InvalidArgumentError,
)

logger = logging.getLogger(__name__)

_LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1", "[::1]")

_SUCCESS_PAGE = (
    "<html><body><h2>Authorization complete.</h2>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)
_FAILURE_PAGE = "<html><body><h2>Authorization failed: {reason}</h2></body></html>"


class CallbackResult(BaseModel):
    """The ``code`` and ``state`` query parameters of the redirect."""

    model_config = ConfigDict(frozen=True)

    code: str
    state: str


class CallbackServer:
    """Single-use loopback server that captures one authorization redirect.

    The socket is bound in the constructor, so a port in use fails fast,
    before the user is sent to the browser.

    Args:
        host: Interface to bind. Must be a loopback address.
        port: TCP port; ``0`` picks a free one (see :attr:`redirect_uri`).
        path: Callback path the provider redirects to.

    Raises:
        InvalidArgumentError: If *host* is not a loopback address or the
            port cannot be bound.

    Example::

        with CallbackServer.from_redirect_uri("http://127.0.0.1:8080/callback") as server:
            webbrowser.open(url)
            result = server.wait_for_callback(timeout=120)
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, path: str = "/callback") -> None:
        if host not in _LOOPBACK_HOSTS:
            raise InvalidArgumentError(f"Callback host must be a loopback address, got {host!r}")
        self.path = path or "/"
        self._captured: dict[str, Optional[str]] = {}

        captured = self._captured
        callback_path = self.path

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                if parsed.path != callback_path:
                    self.send_error(404)
                    return

                params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
                captured.update(
                    code=params.get("code"),
                    state=params.get("state"),
                    error=params.get("error"),
                    error_description=params.get("error_description"),
                )
                if captured["error"]:
                    body = _FAILURE_PAGE.format(reason=captured["error"])
                elif not captured["code"]:
                    body = _FAILURE_PAGE.format(reason="no authorization code received")
                else:
                    body = _SUCCESS_PAGE

                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(body.encode("utf-8"))

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("callback: " + format, *args)

        bind_host = host.strip("[]")
        if bind_host == "localhost":
            bind_host = "127.0.0.1"
        try:
            self._server = HTTPServer((bind_host, port), CallbackHandler)
        except OSError as exc:
            raise InvalidArgumentError(
                f"Cannot listen on {host}:{port} for the OAuth callback: {exc}"
            ) from exc
        self.host = host
        self.port = self._server.server_address[1]

    @classmethod
    def from_redirect_uri(cls, redirect_uri: str) -> CallbackServer:
        """Build a server for a loopback redirect URI such as ``http://127.0.0.1:8080/callback``.

        Raises:
            InvalidArgumentError: If the URI is not a loopback ``http`` URI.
        """
        parsed = urlparse(redirect_uri)
        if parsed.scheme != "http" or parsed.hostname is None:
            raise InvalidArgumentError(
                f"Only loopback http redirect URIs can be served locally: {redirect_uri!r}"
            )
        host = parsed.hostname
        if host not in _LOOPBACK_HOSTS:
            raise InvalidArgumentError(
                f"Redirect URI host must be a loopback address: {redirect_uri!r}"
            )
        return cls(host=host, port=parsed.port or 80, path=parsed.path or "/")

    @property
    def redirect_uri(self) -> str:
        """The redirect URI this server answers, with the bound port."""
        host = f"[{self.host.strip('[]')}]" if ":" in self.host else self.host
        return f"http://{host}:{self.port}{self.path}"

    def wait_for_callback(self, timeout: float = 120) -> CallbackResult:
        """Serve requests until the callback arrives or *timeout* elapses.

        Returns:
            The captured ``code`` and ``state``.

        Raises:
            AuthorizationDeniedError: If the provider redirected with an
                ``error`` parameter, or without a code.
            FlowTimeoutError: If no callback arrived in time.
        """
        deadline = time.monotonic() + timeout
        while not self._captured:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise FlowTimeoutError(
                    f"No authorization callback received within {timeout:g} seconds"
                )
            self._server.timeout = remaining
            self._server.handle_request()

        if self._captured.get("error"):
            raise AuthorizationDeniedError(
                f"Authorization failed: {self._captured['error']}",
                error_code=self._captured["error"],
                description=self._captured.get("error_description"),
            )
        if not self._captured.get("code"):
            raise AuthorizationDeniedError("No authorization code received from callback")
        return CallbackResult(
            code=self._captured["code"] or "",
            state=self._captured.get("state") or "",
        )

    def close(self) -> None:
        self._server.server_close()

    def __enter__(self) -> CallbackServer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
