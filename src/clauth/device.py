"""Device Authorization Grant (:rfc:`8628`) polling state machine.

For headless terminals (SSH, Docker, CI) where a browser cannot be opened
locally. The flow is:

1. :meth:`~clauth.client.OAuthClient.request_device_authorization` obtains
   a ``device_code`` and a ``user_code``
   (:func:`device_authorization_from_response` parses the reply).
2. The user visits ``verification_uri`` on any device and enters the code.
3. :class:`DevicePoller` polls the token endpoint until the grant resolves.

State transitions::

    REQUESTED -> POLLING -> SUCCEEDED
                         -> DENIED
                         -> EXPIRED
                         -> CANCELLED
                 POLLING <-> SLOWED_DOWN

``authorization_pending`` keeps polling at the same interval; ``slow_down``
adds :data:`SLOW_DOWN_INCREMENT` seconds for every later poll.
"""

from __future__ import annotations

import enum
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from clauth.exceptions import (
    AuthorizationDeniedError,
    DeviceCodeExpiredError,
    FlowCancelledError,
    UnknownResponseError,
)
from clauth.models import DeviceAuthorization, TokenInfo, utcnow
from clauth.token import token_info_from_response
from clauth.transport import Transport

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"

SLOW_DOWN_INCREMENT = 5
"""Seconds added to the polling interval on every ``slow_down`` response."""

DEFAULT_INTERVAL = 5
DEFAULT_EXPIRES_IN = 1800


class DeviceFlowState(str, enum.Enum):
    """Lifecycle of one device authorization."""

    REQUESTED = "requested"
    POLLING = "polling"
    SLOWED_DOWN = "slowed_down"
    SUCCEEDED = "succeeded"
    DENIED = "denied"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def device_authorization_from_response(
    fields: Mapping[str, Any], issued_at: datetime
) -> DeviceAuthorization:
    """Parse a device authorization endpoint response.

    Google reports ``verification_url`` instead of ``verification_uri``;
    both are accepted. Missing ``interval`` defaults to 5 seconds and
    missing ``expires_in`` to 30 minutes.

    Raises:
        UnknownResponseError: If ``device_code``, ``user_code`` or the
            verification URI are missing, a number is malformed, or a
            field has the wrong type.
    """
    for name in ("device_code", "user_code"):
        if not fields.get(name):
            raise UnknownResponseError(f"Device authorization response missing '{name}'")
    verification_uri = fields.get("verification_uri") or fields.get("verification_url")
    if not verification_uri:
        raise UnknownResponseError("Device authorization response missing 'verification_uri'")

    interval = fields.get("interval")
    expires_in = fields.get("expires_in")
    try:
        interval = DEFAULT_INTERVAL if interval in (None, "") else int(interval)
        expires_in = DEFAULT_EXPIRES_IN if expires_in in (None, "") else int(expires_in)
    except (TypeError, ValueError, OverflowError) as exc:
        raise UnknownResponseError(
            f"Malformed number in device authorization response: {exc}"
        ) from exc

    try:
        return DeviceAuthorization(
            device_code=str(fields["device_code"]),
            user_code=str(fields["user_code"]),
            verification_uri=str(verification_uri),
            verification_uri_complete=fields.get("verification_uri_complete"),
            interval=max(interval, 0),
            expires_at=issued_at + timedelta(seconds=expires_in),
        )
    except OverflowError as exc:
        raise UnknownResponseError(
            f"expires_in out of range in device authorization response: {expires_in}"
        ) from exc
    except ValidationError as exc:
        fields_in_error = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        raise UnknownResponseError(
            f"Malformed device authorization response field(s): {fields_in_error}"
        ) from exc


class DevicePoller:
    """Polls the token endpoint for one device authorization.

    Args:
        transport: Transport used for token requests.
        token_endpoint: The provider's token endpoint URL.
        client_id: OAuth client id.
        authorization: Result of the device authorization request.
        clock: Returns the current UTC time.
        sleep: Called with the number of seconds to wait between polls.
            Defaults to waiting on *cancel*, so setting the event interrupts
            the wait immediately.
        cancel: Event that aborts the flow with :class:`FlowCancelledError`.

    Attributes:
        state: Current :class:`DeviceFlowState`.
        interval: Current polling interval in seconds.
        polls: Number of token requests sent so far.
    """

    def __init__(
        self,
        transport: Transport,
        token_endpoint: str,
        client_id: str,
        authorization: DeviceAuthorization,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Optional[Callable[[float], Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._transport = transport
        self._token_endpoint = token_endpoint
        self._client_id = client_id
        self._authorization = authorization
        self._clock = clock
        self._cancel = cancel or threading.Event()
        self._sleep = sleep or self._cancel.wait
        self.state = DeviceFlowState.REQUESTED
        self.interval = authorization.interval
        self.polls = 0

    def _check_abort(self) -> None:
        if self._cancel.is_set():
            self.state = DeviceFlowState.CANCELLED
            raise FlowCancelledError("Device authorization cancelled")
        if self._clock() >= self._authorization.expires_at:
            self.state = DeviceFlowState.EXPIRED
            raise DeviceCodeExpiredError("Device code expired before authorization completed")

    def run(self) -> TokenInfo:
        """Poll until the grant succeeds, is denied, expires, or is cancelled.

        Returns:
            The issued token.

        Raises:
            AuthorizationDeniedError: If the user denies access or the
                provider returns any unrecognised error code.
            DeviceCodeExpiredError: On ``expired_token`` or when the clock
                passes ``expires_at``.
            FlowCancelledError: If the cancel event is set.
            UnknownResponseError: If a 2xx response carries no access token.
            HttpError: On transport failure. Not retried.
        """
        data = {
            "grant_type": DEVICE_CODE_GRANT,
            "device_code": self._authorization.device_code,
            "client_id": self._client_id,
        }
        self.state = DeviceFlowState.POLLING

        while True:
            self._check_abort()
            self._sleep(self.interval)
            self._check_abort()

            issued_at = self._clock()
            response = self._transport.post(self._token_endpoint, data)
            self.polls += 1

            if response.ok:
                info = token_info_from_response(response.fields, issued_at)
                self.state = DeviceFlowState.SUCCEEDED
                logger.debug("Device authorization succeeded after %d polls", self.polls)
                return info

            error = response.error
            if error == "authorization_pending":
                self.state = DeviceFlowState.POLLING
                continue
            if error == "slow_down":
                self.interval += SLOW_DOWN_INCREMENT
                self.state = DeviceFlowState.SLOWED_DOWN
                logger.debug("Provider asked to slow down; interval now %ds", self.interval)
                continue
            if error == "expired_token":
                self.state = DeviceFlowState.EXPIRED
                raise DeviceCodeExpiredError("Device code expired -- please try again")

            self.state = DeviceFlowState.DENIED
            if error == "access_denied":
                raise AuthorizationDeniedError(
                    "Authorization denied by user",
                    error_code=error,
                    description=response.error_description,
                )
            raise AuthorizationDeniedError(
                f"Device authorization failed: {response.error_description or error or response.status_code}",
                error_code=error,
                description=response.error_description,
            )
