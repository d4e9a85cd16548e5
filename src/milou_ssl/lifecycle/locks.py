"""Per-location mutual exclusion.

Acquisition, backup, storage and deployment for one certificate
location never interleave.  Inside a process a re-entrant lock per
resolved directory serialises callers; across processes an advisory
``flock`` on ``<dir>/.milou-ssl.lock`` does the same.  Distinct
locations use distinct locks and proceed concurrently.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from milou_ssl.core.errors import PreconditionError

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

LOCK_FILE_NAME = ".milou-ssl.lock"
_POLL_INTERVAL = 0.1


class LocationLocks:
    """Registry of per-location locks.

    Parameters
    ----------
    timeout:
        Seconds a second caller waits before being rejected with
        :class:`PreconditionError`.
    interprocess:
        Also take an advisory file lock inside the location directory.

    """

    def __init__(self, timeout: float = 30.0, *, interprocess: bool = True) -> None:
        self._timeout = timeout
        self._interprocess = interprocess
        self._locks: dict[Path, threading.RLock] = {}
        self._locks_lock = threading.Lock()
        self._held = threading.local()

    def _lock_for(self, key: Path) -> threading.RLock:
        with self._locks_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextlib.contextmanager
    def hold(self, directory: Path) -> Iterator[None]:
        """Hold the lock for *directory* for the duration of the block.

        Raises
        ------
        PreconditionError
            If another operation holds the lock past the timeout.

        """
        key = Path(os.path.normpath(directory))
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self._timeout):
            msg = f"another certificate operation is in progress for {key}"
            raise PreconditionError(msg)
        depth = getattr(self._held, "depth", {})
        self._held.depth = depth
        outermost = depth.get(key, 0) == 0
        depth[key] = depth.get(key, 0) + 1
        fd = None
        try:
            if outermost and self._interprocess:
                fd = self._acquire_file_lock(key)
            yield
        finally:
            depth[key] -= 1
            if fd is not None:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)
            lock.release()

    def _acquire_file_lock(self, key: Path) -> int:
        fd = os.open(key / LOCK_FILE_NAME, os.O_RDWR | os.O_CREAT, 0o600)
        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    msg = f"another process holds the certificate lock for {key}"
                    raise PreconditionError(msg) from None
                time.sleep(_POLL_INTERVAL)
            else:
                log.debug("Acquired file lock for %s", key)
                return fd
