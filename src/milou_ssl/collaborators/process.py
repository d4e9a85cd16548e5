"""Process runner interface for the managed reverse proxy.

Everything the lifecycle needs from the container runtime goes through
:class:`ProcessRunner`; the Docker implementation lives in
:mod:`milou_ssl.collaborators.docker_runner`.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass

from milou_ssl.core.errors import CertificateError


class ProcessRunnerError(CertificateError):
    """The container runtime failed or the container is unusable."""


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(abc.ABC):
    """Control a named long-running process (the reverse proxy)."""

    @abc.abstractmethod
    def is_running(self, name: str) -> bool: ...

    @abc.abstractmethod
    def start(self, name: str) -> None:
        """Start *name* and wait until it reports running.

        Raises
        ------
        ProcessRunnerError
            If the process does not come up in time.

        """

    @abc.abstractmethod
    def stop(self, name: str) -> None: ...

    @abc.abstractmethod
    def restart(self, name: str) -> None: ...

    @abc.abstractmethod
    def exec(self, name: str, argv: tuple[str, ...] | list[str]) -> ExecResult:
        """Run *argv* inside *name* and return its exit code and output."""

    @abc.abstractmethod
    def copy_into(self, name: str, data: bytes, dest_path: str, mode: int) -> None:
        """Write *data* to *dest_path* inside *name* with permission *mode*."""

    @abc.abstractmethod
    def copy_from(self, name: str, src_path: str) -> bytes | None:
        """Read *src_path* from inside *name*; ``None`` if it does not exist."""

    @abc.abstractmethod
    def published_ports(self, name: str) -> set[int]:
        """Host ports *name* publishes (empty when not running or absent)."""
