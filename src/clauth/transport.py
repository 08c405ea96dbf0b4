"""HTTP transport seam between the OAuth core and the network.

The core never imports an HTTP library directly. It calls
:meth:`Transport.post` with a form body and receives a
:class:`TransportResponse` holding the status code and the decoded response
fields. :class:`HttpxTransport` is the default implementation; tests swap in
a scripted fake.

Token endpoints answer with JSON (:rfc:`6749` section 5.1), but some
providers (GitHub without ``Accept: application/json``) still answer with a
form-encoded body, so both are decoded.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import parse_qsl

import httpx
from pydantic import BaseModel, ConfigDict, Field

from clauth.exceptions import HttpError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class TransportResponse(BaseModel):
    """Status code and decoded body fields of one endpoint response."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    fields: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """``True`` for 2xx responses that carry no OAuth ``error`` field."""
        return 200 <= self.status_code < 300 and not self.error

    @property
    def error(self) -> Optional[str]:
        """The OAuth ``error`` code, if the provider returned one."""
        value = self.fields.get("error")
        return str(value) if value else None

    @property
    def error_description(self) -> Optional[str]:
        value = self.fields.get("error_description")
        return str(value) if value else None


class Transport(ABC):
    """Issues form-encoded POST requests to OAuth endpoints."""

    @abstractmethod
    def post(self, url: str, data: dict[str, str]) -> TransportResponse:
        """POST *data* as ``application/x-www-form-urlencoded`` to *url*.

        Non-2xx responses are returned, not raised: OAuth reports protocol
        errors (``authorization_pending``, ``invalid_grant``) in 400 bodies.

        Raises:
            HttpError: If no response was received (DNS, TLS, connection,
                timeout).
        """
        ...

    def close(self) -> None:
        """Release network resources. The default does nothing."""


def decode_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON or form-encoded response body into a dict.

    Returns an empty dict for empty or unrecognised bodies.
    """
    text = response.text.strip()
    if not text:
        return {}
    content_type = response.headers.get("content-type", "")
    if "json" in content_type or text.startswith("{"):
        try:
            data = response.json()
        except ValueError:
            logger.warning("Response from %s is not valid JSON", response.url)
            return {}
        return data if isinstance(data, dict) else {}
    if "=" in text:
        return dict(parse_qsl(text, keep_blank_values=True))
    return {}


class HttpxTransport(Transport):
    """:class:`Transport` backed by an :class:`httpx.Client`.

    Args:
        client: Optional pre-configured client (proxies, custom TLS, or an
            :class:`httpx.MockTransport` in tests). When omitted, one is
            created and closed by :meth:`close`.
        timeout: Request timeout in seconds for the owned client.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def post(self, url: str, data: dict[str, str]) -> TransportResponse:
        try:
            response = self._client.post(
                url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise HttpError(f"Request to {url} failed: {exc}") from exc
        logger.debug("POST %s -> %d", url, response.status_code)
        return TransportResponse(
            status_code=response.status_code, fields=decode_body(response)
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
