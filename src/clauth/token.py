"""Token entity and the token-endpoint response parser.

:func:`token_info_from_response` is the one place that turns a successful
token-endpoint body into a :class:`~clauth.models.TokenInfo`; the code
exchange, device polling and refresh paths all share it.

:class:`Token` wraps a ``TokenInfo`` with the operations an API caller
needs: expiry checks against an injectable clock, fresh-token access, and
refresh through an :class:`~clauth.client.OAuthClient`.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from pydantic import ValidationError

from clauth.exceptions import (
    InvalidArgumentError,
    NoRefreshTokenError,
    TokenExpiredError,
    UnknownResponseError,
)
from clauth.models import TokenInfo, utcnow

if TYPE_CHECKING:
    from clauth.client import OAuthClient


def _parse_expires_in(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    # bool is an int subclass; "expires_in": true is not a lifetime
    if isinstance(value, bool):
        raise UnknownResponseError(f"Malformed expires_in in token response: {value!r}")
    try:
        seconds = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise UnknownResponseError(
            f"Malformed expires_in in token response: {value!r}"
        ) from exc
    if seconds < 0:
        raise UnknownResponseError(f"Negative expires_in in token response: {seconds}")
    return seconds


def token_info_from_response(
    fields: Mapping[str, Any],
    issued_at: datetime,
    *,
    previous_refresh_token: Optional[str] = None,
) -> TokenInfo:
    """Build a :class:`TokenInfo` from a successful token-endpoint body.

    Args:
        fields: Decoded response fields.
        issued_at: Time the request was sent; ``expires_at`` is
            ``issued_at + expires_in`` so clock skew errs on the early side.
        previous_refresh_token: Kept when the response omits a new refresh
            token (refresh grant without rotation).

    Returns:
        The parsed token.

    Raises:
        UnknownResponseError: If ``access_token`` is missing or
            ``expires_in`` is malformed, or any field has the wrong type.
    """
    access_token = fields.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise UnknownResponseError("Token response missing 'access_token'")

    expires_in = _parse_expires_in(fields.get("expires_in"))
    try:
        expires_at = issued_at + timedelta(seconds=expires_in) if expires_in is not None else None
    except OverflowError as exc:
        raise UnknownResponseError(f"expires_in out of range in token response: {expires_in}") from exc

    scope = fields.get("scope")
    if isinstance(scope, list):
        scope = " ".join(str(s) for s in scope)

    try:
        return TokenInfo(
            access_token=access_token,
            refresh_token=fields.get("refresh_token") or previous_refresh_token,
            token_type=fields.get("token_type") or "Bearer",
            expires_at=expires_at,
            expires_in=expires_in,
            scope=scope or None,
        )
    except ValidationError as exc:
        fields_in_error = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        raise UnknownResponseError(
            f"Malformed token response field(s): {fields_in_error}"
        ) from exc


class Token:
    """An access token bound to the client that can renew it.

    Args:
        info: The token material.
        client: Client used by :meth:`refresh`. Optional for read-only use.
        clock: Returns the current UTC time. Injectable for tests.

    Example::

        token = Token(info, client)
        if token.is_expired(skew=30):
            token = token.refresh()
        headers = token.authorization_header()
    """

    def __init__(
        self,
        info: TokenInfo,
        client: Optional[OAuthClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.info = info
        self._client = client
        self._clock = clock

    def __repr__(self) -> str:
        return f"Token(token_type={self.info.token_type!r}, expires_at={self.info.expires_at!r})"

    def is_expired(self, skew: float = 0) -> bool:
        """Return ``True`` if ``now + skew`` is at or past ``expires_at``.

        A token with unknown expiry is treated as valid.
        """
        return self.info.is_expired(skew=skew, now=self._clock())

    def access_token(self, require_fresh: bool = False, skew: float = 0) -> str:
        """Return the access token string.

        Args:
            require_fresh: Refuse to hand out an expired token.
            skew: Safety margin in seconds for the freshness check.

        Raises:
            TokenExpiredError: If *require_fresh* is set and the token is expired.
        """
        if require_fresh and self.is_expired(skew):
            raise TokenExpiredError("Access token has expired; refresh it first")
        return self.info.access_token

    def refresh(self) -> Token:
        """Exchange the refresh token for a new :class:`Token`.

        Raises:
            NoRefreshTokenError: If the token carries no refresh token.
            InvalidArgumentError: If the token is not bound to a client.
        """
        if not self.info.refresh_token:
            raise NoRefreshTokenError("Token has no refresh token; log in again")
        if self._client is None:
            raise InvalidArgumentError("Token is not bound to an OAuthClient")
        info = self._client.refresh(self.info.refresh_token)
        return Token(info, self._client, self._clock)

    def authorization_header(self) -> dict[str, str]:
        """Return the ``Authorization`` header for this token."""
        token_type = self.info.token_type
        # Some providers return lowercase "bearer"
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        return {"Authorization": f"{token_type} {self.info.access_token}"}
