"""Exception hierarchy for clauth.

All exceptions inherit from :class:`ClauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`clauth.exit_codes`.
Library callers catch the specific subclasses; the CLI entry point in
:func:`clauth.app.main` catches ``ClauthError`` and exits with the
appropriate code.

Subclass hierarchy::

    ClauthError (exit 1)
    +-- InvalidArgumentError      (exit 2)
    |   +-- ConfigError           (exit 2)
    +-- NotFoundError             (exit 4)
    +-- StorageError              (exit 8)
    +-- HttpError                 (exit 6)
    +-- AuthorizationDeniedError  (exit 3)
    +-- TokenExpiredError         (exit 3)
    +-- NoRefreshTokenError       (exit 3)
    +-- DeviceCodeExpiredError    (exit 3)
    +-- UnknownResponseError      (exit 5)
    +-- FlowTimeoutError          (exit 9)
    +-- FlowCancelledError        (exit 130)
"""

from __future__ import annotations

from clauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PROVIDER_ERROR,
    EXIT_STORAGE_ERROR,
    EXIT_TIMEOUT,
)


class ClauthError(Exception):
    """Base exception for all clauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`clauth.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidArgumentError(ClauthError):
    """Raised for malformed configuration or call parameters. Never retried."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(InvalidArgumentError):
    """Raised for configuration file problems (missing profiles, invalid JSON, bad sources)."""


class NotFoundError(ClauthError):
    """Raised when a session state or token key is absent from its store.

    This is the expected, recoverable outcome of a lookup and is kept
    distinct from :class:`StorageError`.
    """

    exit_code = EXIT_NOT_FOUND


class StorageError(ClauthError):
    """Raised when a storage backend fails (I/O error, corrupt entry)."""

    exit_code = EXIT_STORAGE_ERROR


class HttpError(ClauthError):
    """Raised on transport failures (DNS, TLS, connection refused, timeout)."""

    exit_code = EXIT_CONNECTION_ERROR


class AuthorizationDeniedError(ClauthError):
    """Raised when the user declines or the provider rejects a grant.

    Also raised for replayed or forged callbacks whose ``state`` has no
    pending session.

    Attributes:
        error_code: OAuth ``error`` value from the provider, if any
            (e.g. ``"access_denied"``, ``"invalid_grant"``).
        description: OAuth ``error_description``, if any.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        description: str | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.description = description


class TokenExpiredError(ClauthError):
    """Raised when a fresh access token was required but it has expired."""

    exit_code = EXIT_AUTH_FAILURE


class NoRefreshTokenError(ClauthError):
    """Raised when an expired token has no refresh token; a new login is required."""

    exit_code = EXIT_AUTH_FAILURE


class DeviceCodeExpiredError(ClauthError):
    """Raised when a device code expires before the user completes authorization."""

    exit_code = EXIT_AUTH_FAILURE


class UnknownResponseError(ClauthError):
    """Raised for provider responses outside the expected schema."""

    exit_code = EXIT_PROVIDER_ERROR


class FlowTimeoutError(ClauthError):
    """Raised when waiting for a redirect callback or an in-flight refresh times out."""

    exit_code = EXIT_TIMEOUT


class FlowCancelledError(ClauthError):
    """Raised when a cancel signal aborts a running flow."""

    exit_code = EXIT_CANCELLED
