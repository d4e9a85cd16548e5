"""Docker implementation of :class:`ProcessRunner`.

Uses the Docker SDK for Python.  Files are moved in and out of the
container as in-memory tar archives (``put_archive``/``get_archive``),
which is what ``docker cp`` does under the hood.
"""

from __future__ import annotations

import io
import logging
import posixpath
import tarfile
import time

import docker
import docker.errors

from milou_ssl.collaborators.process import ExecResult, ProcessRunner, ProcessRunnerError

log = logging.getLogger(__name__)


class DockerProcessRunner(ProcessRunner):
    """Manage the proxy container through the Docker Engine API.

    Parameters
    ----------
    base_url:
        Docker daemon URL; ``None`` uses the environment (``DOCKER_HOST``).
    start_timeout:
        Seconds to wait for a started container to report ``running``.
    client:
        Pre-built ``docker.DockerClient`` (tests inject a mock).

    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        start_timeout: int = 10,
        poll_interval: float = 1.0,
        client=None,
        sleep=time.sleep,
    ) -> None:
        self._base_url = base_url
        self._client = client
        self._start_timeout = start_timeout
        self._poll_interval = poll_interval
        self._sleep = sleep

    @property
    def client(self):
        if self._client is None:
            try:
                if self._base_url:
                    self._client = docker.DockerClient(base_url=self._base_url)
                else:
                    self._client = docker.from_env()
            except docker.errors.DockerException as exc:
                msg = f"cannot connect to Docker: {exc}"
                raise ProcessRunnerError(msg) from exc
        return self._client

    def _find(self, name: str):
        try:
            return self.client.containers.get(name)
        except docker.errors.NotFound:
            return None
        except docker.errors.DockerException as exc:
            msg = f"cannot inspect container {name}: {exc}"
            raise ProcessRunnerError(msg, retryable=True) from exc

    def _get(self, name: str):
        container = self._find(name)
        if container is None:
            msg = f"container {name} does not exist"
            raise ProcessRunnerError(msg)
        return container

    def is_running(self, name: str) -> bool:
        container = self._find(name)
        return container is not None and container.status == "running"

    def start(self, name: str) -> None:
        container = self._get(name)
        if container.status != "running":
            log.info("Starting container %s", name)
            try:
                container.start()
            except docker.errors.APIError as exc:
                msg = f"cannot start container {name}: {exc}"
                raise ProcessRunnerError(msg, retryable=True) from exc
        self._wait_running(container, name)

    def stop(self, name: str) -> None:
        container = self._find(name)
        if container is None or container.status != "running":
            return
        log.info("Stopping container %s", name)
        try:
            container.stop(timeout=10)
        except docker.errors.APIError as exc:
            msg = f"cannot stop container {name}: {exc}"
            raise ProcessRunnerError(msg, retryable=True) from exc

    def restart(self, name: str) -> None:
        container = self._get(name)
        log.info("Restarting container %s", name)
        try:
            container.restart(timeout=10)
        except docker.errors.APIError as exc:
            msg = f"cannot restart container {name}: {exc}"
            raise ProcessRunnerError(msg, retryable=True) from exc
        self._wait_running(container, name)

    def exec(self, name: str, argv: tuple[str, ...] | list[str]) -> ExecResult:
        container = self._get(name)
        try:
            result = container.exec_run(list(argv))
        except docker.errors.APIError as exc:
            msg = f"cannot run {' '.join(argv)} in {name}: {exc}"
            raise ProcessRunnerError(msg) from exc
        output = result.output or b""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        return ExecResult(exit_code=result.exit_code, output=output)

    def copy_into(self, name: str, data: bytes, dest_path: str, mode: int) -> None:
        container = self._get(name)
        directory, filename = posixpath.split(dest_path)
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tar:
            info = tarfile.TarInfo(name=filename)
            info.size = len(data)
            info.mode = mode
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(data))
        try:
            ok = container.put_archive(directory or "/", buf.getvalue())
        except docker.errors.APIError as exc:
            msg = f"cannot copy {filename} into {name}:{directory}: {exc}"
            raise ProcessRunnerError(msg) from exc
        if not ok:
            msg = f"Docker rejected copy of {filename} into {name}:{directory}"
            raise ProcessRunnerError(msg)

    def copy_from(self, name: str, src_path: str) -> bytes | None:
        container = self._get(name)
        try:
            chunks, _stat = container.get_archive(src_path)
        except docker.errors.NotFound:
            return None
        except docker.errors.APIError as exc:
            msg = f"cannot copy {src_path} out of {name}: {exc}"
            raise ProcessRunnerError(msg) from exc
        archive = io.BytesIO(b"".join(chunks))
        with tarfile.open(fileobj=archive, mode="r") as tar:
            for member in tar.getmembers():
                if member.isfile():
                    extracted = tar.extractfile(member)
                    return extracted.read() if extracted else None
        return None

    def published_ports(self, name: str) -> set[int]:
        container = self._find(name)
        if container is None or container.status != "running":
            return set()
        ports = (container.attrs.get("NetworkSettings") or {}).get("Ports") or {}
        published: set[int] = set()
        for bindings in ports.values():
            for binding in bindings or []:
                host_port = binding.get("HostPort")
                if host_port:
                    published.add(int(host_port))
        return published

    def _wait_running(self, container, name: str) -> None:
        for _attempt in range(self._start_timeout):
            container.reload()
            if container.status == "running":
                log.info("Container %s is running", name)
                return
            self._sleep(self._poll_interval)
        msg = f"container {name} did not reach running state within {self._start_timeout} attempts"
        raise ProcessRunnerError(msg, retryable=True)
