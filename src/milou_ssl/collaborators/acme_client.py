"""ACME client interface and the certbot implementation.

Issuance uses the HTTP-01 challenge with certbot's standalone
responder, which binds port 80 for the duration of the run.  The
caller is responsible for freeing the port first.
"""

from __future__ import annotations

import abc
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)


class AcmeClientError(Exception):
    """Issuance failed.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient (timeouts, rate limits).

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


@dataclass(frozen=True)
class IssuedPair:
    """PEM full chain and private key produced by an ACME CA."""

    fullchain_pem: bytes
    private_key_pem: bytes


class AcmeClient(abc.ABC):
    @abc.abstractmethod
    def issue_standalone_http01(
        self,
        domain: str,
        email: str,
        *,
        timeout: float | None = None,
    ) -> IssuedPair:
        """Obtain a certificate for *domain* via standalone HTTP-01.

        Raises
        ------
        AcmeClientError
            On any issuance failure.

        """


# Output fragments that indicate a transient CA-side problem.
_RETRYABLE_MARKERS = (
    "timeout",
    "timed out",
    "rate limit",
    "too many",
    "service unavailable",
    "connection reset",
    "temporarily",
)


class CertbotAcmeClient(AcmeClient):
    """:class:`AcmeClient` running ``certbot certonly --standalone``.

    Parameters
    ----------
    certbot_path:
        Executable name or path.
    config_dir:
        certbot configuration directory; issued files are read from
        ``<config_dir>/live/<domain>/``.
    staging:
        Use the CA's staging environment.

    """

    def __init__(
        self,
        certbot_path: str = "certbot",
        config_dir: str = "/etc/letsencrypt",
        *,
        staging: bool = False,
        http_port: int = 80,
    ) -> None:
        self._certbot = certbot_path
        self._config_dir = Path(config_dir)
        self._staging = staging
        self._http_port = http_port

    def build_command(self, domain: str, email: str) -> list[str]:
        # Only called when new material is needed; an existing lineage
        # that certbot considers not yet due must still be reissued.
        cmd = [
            self._certbot,
            "certonly",
            "--standalone",
            "--non-interactive",
            "--agree-tos",
            "--email",
            email,
            "--domains",
            domain,
            "--cert-name",
            domain,
            "--force-renewal",
            "--preferred-challenges",
            "http",
            "--http-01-port",
            str(self._http_port),
            "--config-dir",
            str(self._config_dir),
        ]
        if self._staging:
            cmd.append("--staging")
        return cmd

    def issue_standalone_http01(
        self,
        domain: str,
        email: str,
        *,
        timeout: float | None = None,
    ) -> IssuedPair:
        cmd = self.build_command(domain, email)
        log.info("Requesting ACME certificate for %s", domain)
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                check=False,
                timeout=timeout,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            msg = f"certbot executable not found: {self._certbot}"
            raise AcmeClientError(msg) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"certbot did not finish within {timeout}s"
            raise AcmeClientError(msg, retryable=True) from exc

        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            tail = output.splitlines()[-1] if output else f"exit code {result.returncode}"
            lowered = output.lower()
            msg = f"certbot failed for {domain}: {tail}"
            raise AcmeClientError(
                msg,
                retryable=any(marker in lowered for marker in _RETRYABLE_MARKERS),
            )

        live = self._config_dir / "live" / domain
        try:
            return IssuedPair(
                fullchain_pem=(live / "fullchain.pem").read_bytes(),
                private_key_pem=(live / "privkey.pem").read_bytes(),
            )
        except OSError as exc:
            msg = f"certbot reported success but {live} is unreadable: {exc}"
            raise AcmeClientError(msg) from exc
