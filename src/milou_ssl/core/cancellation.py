"""Cooperative cancellation for long-running operations.

A :class:`CancellationToken` is checked between the steps of an
acquisition.  It is cancelled explicitly (signal handler, worker stop)
or implicitly once its deadline passes.
"""

from __future__ import annotations

import threading
import time

from milou_ssl.core.errors import AcquisitionCancelled


class CancellationToken:
    """Thread-safe cancellation flag with an optional deadline.

    Parameters
    ----------
    timeout:
        Seconds from now after which the token reports itself as
        cancelled.  ``None`` means no deadline.

    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, strategy: str) -> None:
        """Raise :class:`AcquisitionCancelled` when cancelled."""
        if self._event.is_set():
            raise AcquisitionCancelled(strategy)
        if self.cancelled:
            raise AcquisitionCancelled(strategy, "deadline exceeded")
