"""Who is listening on the HTTP-01 port?

The standalone ACME responder needs port 80.  It may be free, held by
the managed reverse proxy (which we can stop and restart) or held by
something else (which we must not touch).
"""

from __future__ import annotations

import errno
import logging
import socket
from typing import TYPE_CHECKING

from milou_ssl.core.errors import PreconditionError
from milou_ssl.core.types import PortOwner

if TYPE_CHECKING:
    from milou_ssl.collaborators.process import ProcessRunner

log = logging.getLogger(__name__)


class PortInspector:
    """Determine the owner of a TCP port.

    Parameters
    ----------
    runner:
        Process runner used to ask whether the proxy publishes the port.
    proxy_name:
        Name of the managed proxy container.
    bind_host:
        Address used for the bind probe.

    """

    def __init__(
        self,
        runner: ProcessRunner | None,
        proxy_name: str,
        bind_host: str = "0.0.0.0",  # noqa: S104
    ) -> None:
        self._runner = runner
        self._proxy = proxy_name
        self._bind_host = bind_host

    def is_free(self, port: int) -> bool:
        """Try to bind *port*; ``True`` when nothing else holds it.

        Raises
        ------
        PreconditionError
            If the process lacks the privilege to bind *port*, or the
            bind fails for any reason other than the port being in use.

        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._bind_host, port))
        except PermissionError as exc:
            msg = f"insufficient privileges to bind port {port}"
            raise PreconditionError(msg) from exc
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                return False
            msg = f"cannot bind {self._bind_host}:{port}: {exc.strerror or exc}"
            raise PreconditionError(msg) from exc
        finally:
            sock.close()
        return True

    def owner(self, port: int) -> PortOwner:
        if self.is_free(port):
            return PortOwner.FREE
        if self._runner is not None and self._runner.is_running(self._proxy):
            if port in self._runner.published_ports(self._proxy):
                log.info("Port %d is held by the %s proxy", port, self._proxy)
                return PortOwner.PROXY
        log.warning("Port %d is held by a process other than %s", port, self._proxy)
        return PortOwner.OTHER
