"""``watch`` subcommand -- run the renewal worker in the foreground."""

from __future__ import annotations

import logging
import signal

from milou_ssl.core.errors import EXIT_OK
from milou_ssl.lifecycle.worker import RenewalWorker

log = logging.getLogger(__name__)


def run_watch(manager, args) -> int:
    """Run renewal checks until SIGINT/SIGTERM."""
    worker = RenewalWorker(
        manager,
        manager.settings.renewal,
        path=args.path,
        domain=args.domain or manager.settings.domain,
    )

    def _shutdown(signum, _frame) -> None:
        log.info("Received signal %d, stopping renewal worker", signum)
        worker.stop(timeout=0)

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)
    worker.start()
    worker.wait()
    return EXIT_OK
