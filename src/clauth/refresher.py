"""Single-flight token refresh shared by any number of threads.

When many threads find the same token expired at once, exactly one of them
(the *leader*) talks to the token endpoint; the others (*followers*) block
on the leader's :class:`concurrent.futures.Future` and receive the same
:class:`~clauth.models.TokenInfo`, or the same exception.

Coordination state is a per-key future in a small arena guarded by one
lock. The lock is only held to look up or register a future, never across
network I/O, so unrelated keys never contend. The arena entry exists only
while its leader's refresh is running.

The leader re-reads the token store before refreshing: a previous leader may
have committed a fresh token between this caller's expiry check and its
registration. With a :class:`~clauth.lock.RefreshLockManager` the re-read,
refresh and save also run under a per-key file lock, which extends the same
guarantee to other processes sharing a persistent token store.
"""

from __future__ import annotations

import concurrent.futures
import contextlib
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from clauth.client import OAuthClient
from clauth.exceptions import (
    FlowTimeoutError,
    InvalidArgumentError,
    NoRefreshTokenError,
)
from clauth.lock import RefreshLockManager
from clauth.models import TokenInfo, utcnow

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 60.0


class TokenRefresher:
    """Hands out valid tokens, refreshing each key at most once at a time.

    Args:
        client: Client whose token store holds the tokens and whose
            :meth:`~clauth.client.OAuthClient.refresh` renews them.
        skew: Seconds of safety margin; tokens count as expired this early.
        timeout: Upper bound in seconds for follower waits and
            :meth:`wait`.
        clock: Returns the current UTC time.
        lock_manager: Optional cross-process lock held around each refresh.
            Use it when other processes share the client's token store.

    Example::

        refresher = TokenRefresher(client, skew=30)
        token = refresher.get_valid("github.com:me")
        ...
        refresher.close()
    """

    def __init__(
        self,
        client: OAuthClient,
        *,
        skew: float = 0,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        lock_manager: Optional[RefreshLockManager] = None,
    ) -> None:
        self.client = client
        self.skew = skew
        self.timeout = timeout
        self.clock = clock
        self.lock_manager = lock_manager
        self._arena_lock = threading.Lock()
        self._in_flight: dict[str, concurrent.futures.Future[TokenInfo]] = {}

    def _expired(self, info: TokenInfo) -> bool:
        return info.is_expired(self.skew, self.clock())

    def get_valid(self, key: str) -> TokenInfo:
        """Return a non-expired token for *key*, refreshing it if needed.

        Raises:
            NotFoundError: If no token is stored under *key*.
            NoRefreshTokenError: If the token is expired and cannot be renewed.
            FlowTimeoutError: If another thread's refresh did not finish
                within :attr:`timeout`.
            AuthorizationDeniedError: If the provider rejected the refresh.
            HttpError: On transport failure.
        """
        info = self.client.get_token(key)
        if not self._expired(info):
            return info
        if not info.refresh_token:
            raise NoRefreshTokenError(f"Token '{key}' expired and has no refresh token")
        return self._single_flight(key, self._expired)

    def get_valid_with_threshold(self, key: str, threshold: float) -> TokenInfo:
        """Like :meth:`get_valid`, but refresh once *threshold* of the lifetime has elapsed.

        Proactive refresh avoids handing out a token that expires mid-request.
        Tokens without a reported lifetime fall back to the expiry check. A
        token past the threshold but not yet expired and without a refresh
        token is still returned.

        Args:
            threshold: Fraction of the lifetime, in ``(0, 1]``.

        Raises:
            InvalidArgumentError: If *threshold* is out of range.
        """
        if not 0 < threshold <= 1:
            raise InvalidArgumentError(f"threshold must be in (0, 1], got {threshold}")

        def stale(info: TokenInfo) -> bool:
            if self._expired(info):
                return True
            elapsed = info.lifetime_elapsed(self.clock())
            return elapsed is not None and elapsed >= threshold

        info = self.client.get_token(key)
        if not stale(info):
            return info
        if not info.refresh_token:
            if self._expired(info):
                raise NoRefreshTokenError(f"Token '{key}' expired and has no refresh token")
            return info
        return self._single_flight(key, stale)

    def refresh(self, key: str) -> TokenInfo:
        """Refresh *key* now, whatever its expiry, joining any refresh in flight.

        A token that was replaced after this call read it (by another thread
        or, with a lock manager, another process) counts as already refreshed.

        Raises:
            NotFoundError: If no token is stored under *key*.
            NoRefreshTokenError: If the token has no refresh token.
        """
        seen = self.client.get_token(key)
        return self._single_flight(key, lambda info: info == seen)

    def _single_flight(
        self, key: str, needs_refresh: Callable[[TokenInfo], bool]
    ) -> TokenInfo:
        with self._arena_lock:
            future = self._in_flight.get(key)
            leader = future is None
            if future is None:
                future = concurrent.futures.Future()
                self._in_flight[key] = future

        if not leader:
            try:
                return future.result(timeout=self.timeout)
            except concurrent.futures.TimeoutError as exc:
                raise FlowTimeoutError(
                    f"Timed out after {self.timeout:g}s waiting for refresh of '{key}'"
                ) from exc

        try:
            with self._cross_process_lock(key):
                current = self.client.get_token(key)
                if needs_refresh(current):
                    if not current.refresh_token:
                        raise NoRefreshTokenError(f"Token '{key}' has no refresh token")
                    logger.debug("Refreshing token '%s'", key)
                    current = self.client.refresh(current.refresh_token)
                    self.client.save_token(key, current)
        except BaseException as exc:
            self._finish(key)
            future.set_exception(exc)
            raise
        self._finish(key)
        future.set_result(current)
        return current

    def _cross_process_lock(self, key: str) -> contextlib.AbstractContextManager[None]:
        if self.lock_manager is None:
            return contextlib.nullcontext()
        return self.lock_manager.acquire(key, timeout=self.timeout)

    def _finish(self, key: str) -> None:
        with self._arena_lock:
            self._in_flight.pop(key, None)

    def in_flight(self) -> list[str]:
        """Return the keys with a refresh currently running."""
        with self._arena_lock:
            return sorted(self._in_flight)

    def wait(self, key: str, timeout: Optional[float] = None) -> bool:
        """Block until no refresh for *key* is in flight.

        Returns immediately when the key is idle. When a refresh is running,
        returns once its result has been committed to the token store.

        Args:
            timeout: Seconds to wait; defaults to :attr:`timeout`.

        Returns:
            ``True`` if the key is idle, ``False`` if the wait timed out.
        """
        with self._arena_lock:
            future = self._in_flight.get(key)
        if future is None:
            return True
        concurrent.futures.wait([future], timeout=self.timeout if timeout is None else timeout)
        return future.done()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for every in-flight refresh to finish.

        Returns:
            ``True`` if all refreshes finished within *timeout*.
        """
        with self._arena_lock:
            futures = list(self._in_flight.values())
        if not futures:
            return True
        _, pending = concurrent.futures.wait(
            futures, timeout=self.timeout if timeout is None else timeout
        )
        return not pending

    def close(self) -> None:
        """Drain in-flight refreshes before the process exits."""
        if not self.drain():
            logger.warning("Refreshes still in flight at close: %s", ", ".join(self.in_flight()))
