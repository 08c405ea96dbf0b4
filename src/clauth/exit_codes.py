"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to one error category of the OAuth core and is referenced
by the corresponding :class:`~clauth.exceptions.ClauthError` subclass.
Shell wrappers can inspect the exit code of ``clauth auth token`` to decide
whether a new login is needed without parsing stderr.

Example::

    $ clauth auth token github
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the provider rejected the refresh token
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""Invalid arguments, configuration, or call parameters."""

EXIT_AUTH_FAILURE = 3
"""Authorization was denied, or the stored token can no longer be used."""

EXIT_NOT_FOUND = 4
"""No session or token exists for the requested key."""

EXIT_PROVIDER_ERROR = 5
"""The provider answered with a response outside the expected schema."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, TLS, connection refused)."""

EXIT_STORAGE_ERROR = 8
"""The session or token storage backend failed."""

EXIT_TIMEOUT = 9
"""Gave up waiting for a callback or an in-flight refresh."""

EXIT_CANCELLED = 130
"""The user aborted the flow (Ctrl-C or an explicit cancel signal)."""
