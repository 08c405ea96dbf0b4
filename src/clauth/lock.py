"""Cross-process refresh locks.

:class:`~clauth.refresher.TokenRefresher` deduplicates refreshes between
threads of one process. Two ``clauth`` processes sharing a persistent token
store still race: both see the expired token, both spend the refresh token,
and with rotating providers the loser's refresh token is already revoked.

:class:`RefreshLockManager` closes that gap with one lock file per token key
(``<lock_dir>/<percent-encoded key>.lock``), held through the refresher's
re-read, refresh, and save. The lock is advisory and released by the OS when
the holding process dies, so a crash never wedges other processes.
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import quote

from filelock import FileLock, Timeout

from clauth.config import get_lock_dir
from clauth.exceptions import FlowTimeoutError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 60.0


class RefreshLockManager:
    """Hands out per-key exclusive file locks.

    Args:
        directory: Where lock files live. Defaults to :func:`clauth.config.get_lock_dir`.
        timeout: Seconds :meth:`acquire` waits for another holder.

    Example::

        locks = RefreshLockManager()
        with locks.acquire("github.com:octocat"):
            ...  # re-read, refresh, save
    """

    def __init__(self, directory: Optional[Path] = None, *, timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.directory = directory if directory is not None else get_lock_dir()
        self.timeout = timeout

    def lock_path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + ".lock")

    def _file_lock(self, key: str) -> FileLock:
        path = self.lock_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create lock directory {path.parent}: {exc}") from exc
        # a fresh FileLock per call opens its own descriptor, so threads of
        # one process exclude each other as well
        return FileLock(str(path))

    @contextlib.contextmanager
    def acquire(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold the lock for *key* for the duration of the ``with`` block.

        Raises:
            FlowTimeoutError: If another holder kept the lock past *timeout*
                (default :attr:`timeout`).
            StorageError: If the lock file cannot be created.
        """
        wait = self.timeout if timeout is None else timeout
        lock = self._file_lock(key)
        try:
            lock.acquire(timeout=wait)
        except Timeout as exc:
            raise FlowTimeoutError(
                f"Timed out after {wait:g}s waiting for the refresh lock of '{key}'"
            ) from exc
        except OSError as exc:
            raise StorageError(f"Cannot lock {self.lock_path(key)}: {exc}") from exc
        logger.debug("Acquired refresh lock for '%s'", key)
        try:
            yield
        finally:
            lock.release()

    def try_acquire(self, key: str) -> Optional[FileLock]:
        """Take the lock for *key* without waiting.

        Returns:
            The held :class:`filelock.FileLock` (call ``release()`` when
            done), or ``None`` if another holder has it.
        """
        lock = self._file_lock(key)
        try:
            lock.acquire(blocking=False)
        except Timeout:
            return None
        except OSError as exc:
            raise StorageError(f"Cannot lock {self.lock_path(key)}: {exc}") from exc
        return lock
