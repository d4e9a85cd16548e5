"""Background renewal worker.

Daemon thread that periodically runs ``renew_if_needed`` for one
certificate location.  Failures back off exponentially, capped at 8x
the check interval.  Stopping the worker cancels an in-flight renewal;
a proxy stopped for ACME issuance is still restarted.

Usage::

    worker = RenewalWorker(manager, settings.renewal, path="./ssl", domain="example.com")
    worker.start()
    ...
    worker.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from milou_ssl.core.cancellation import CancellationToken

if TYPE_CHECKING:
    from milou_ssl.config.settings import RenewalSettings
    from milou_ssl.lifecycle.manager import CertificateManager
    from milou_ssl.models.results import OperationResult

log = logging.getLogger(__name__)


class RenewalWorker:
    """Daemon thread that keeps one certificate renewed."""

    def __init__(
        self,
        manager: CertificateManager,
        settings: RenewalSettings,
        *,
        path: str | None,
        domain: str,
    ) -> None:
        self._manager = manager
        self._settings = settings
        self._path = path
        self._domain = domain
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._token: CancellationToken | None = None
        self._consecutive_failures = 0

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def start(self) -> None:
        """Start the background worker thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="renewal-worker",
            daemon=True,
        )
        self._thread.start()
        log.info(
            "Renewal worker started (domain=%s, threshold=%dd, interval=%ds)",
            self._domain,
            self._settings.threshold_days,
            self._settings.check_interval_seconds,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the worker to stop, cancel in-flight work and wait."""
        self._stop_event.set()
        if self._token is not None:
            self._token.cancel()
        if self._thread is not None:
            self._thread.join(timeout=timeout if timeout is not None else self._settings.check_interval_seconds + 5)
            log.info("Renewal worker stopped")

    def wait(self) -> None:
        """Block until the worker exits (for foreground ``watch``)."""
        while self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=1.0)

    def run_once(self) -> OperationResult:
        """Run a single renewal check in the calling thread."""
        self._token = CancellationToken()
        try:
            return self._manager.renew_if_needed(self._path, self._domain, token=self._token)
        finally:
            self._token = None

    def _run(self) -> None:
        """Main worker loop."""
        interval = self._settings.check_interval_seconds
        while not self._stop_event.is_set():
            try:
                self.run_once()
                self._consecutive_failures = 0
            except Exception:
                self._consecutive_failures += 1
                log.exception(
                    "Renewal check failed (consecutive: %d)",
                    self._consecutive_failures,
                )
                # Exponential backoff, capped at 8x the interval
                backoff = min(interval * (2**self._consecutive_failures), interval * 8)
                self._stop_event.wait(timeout=backoff)
                continue
            self._stop_event.wait(timeout=interval)
