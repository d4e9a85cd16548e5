"""ACME strategy -- HTTP-01 issuance with a standalone responder.

Preconditions: root privileges, a publicly resolvable domain and port
80 either free or held by the managed proxy.  When the proxy holds the
port it is stopped for the issuance and always started again
afterwards, whether issuance succeeds, fails or is cancelled.  A failed
restart is logged and left to the deployment step, which starts a
stopped proxy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from milou_ssl.acquisition.base import AcquisitionStrategy
from milou_ssl.collaborators.acme_client import AcmeClientError
from milou_ssl.collaborators.process import ProcessRunnerError
from milou_ssl.core.errors import AcquisitionError, PreconditionError, ValidationError
from milou_ssl.core.types import IssuerKind, PortOwner, StrategyName

if TYPE_CHECKING:
    from milou_ssl.models.material import CertificateMaterial
    from milou_ssl.models.request import AcquisitionRequest

log = logging.getLogger(__name__)


class AcmeStrategy(AcquisitionStrategy):
    name = StrategyName.ACME

    def check_preconditions(self, request: AcquisitionRequest) -> None:
        acme = self._ctx.settings.acme
        if acme.require_root and not self._ctx.is_root():
            msg = "ACME issuance requires root privileges to bind port 80"
            raise PreconditionError(msg)
        if not (request.email or acme.email):
            msg = "ACME issuance requires a contact email (acme.email or MILOU_ACME_EMAIL)"
            raise PreconditionError(msg)
        if self._ctx.acme_client is None or self._ctx.resolver is None or self._ctx.ports is None:
            msg = "ACME issuance is not configured (client, resolver or port inspector missing)"
            raise PreconditionError(msg)
        if not self._ctx.resolver.is_publicly_resolvable(request.domain):
            msg = f"domain {request.domain} is not publicly resolvable"
            raise PreconditionError(msg)

    def acquire(self, request: AcquisitionRequest) -> CertificateMaterial:
        self.check_preconditions(request)
        acme = self._ctx.settings.acme
        proxy = self._ctx.settings.proxy.container
        token = request.token

        owner = self._ctx.ports.owner(acme.http_port)
        if owner is PortOwner.OTHER:
            msg = f"port {acme.http_port} is in use by another process; free it before requesting a certificate"
            raise PreconditionError(msg)

        stopped_proxy = False
        try:
            if token is not None:
                token.raise_if_cancelled(self.name)
            if owner is PortOwner.PROXY:
                log.info("Stopping %s to free port %d", proxy, acme.http_port)
                self._ctx.runner.stop(proxy)
                stopped_proxy = True

            timeout = acme.timeout_seconds
            if token is not None:
                token.raise_if_cancelled(self.name)
                remaining = token.remaining()
                if remaining is not None:
                    timeout = min(timeout, remaining)

            pair = self._ctx.acme_client.issue_standalone_http01(
                request.domain,
                request.email or acme.email,
                timeout=timeout,
            )
            if token is not None:
                token.raise_if_cancelled(self.name)
        except AcmeClientError as exc:
            raise AcquisitionError(self.name, exc.detail, retryable=exc.retryable) from exc
        except ProcessRunnerError as exc:
            raise AcquisitionError(self.name, exc.detail, retryable=exc.retryable) from exc
        finally:
            if stopped_proxy:
                self._restart_proxy(proxy)

        try:
            return self._ctx.crypto.build_material(
                pair.fullchain_pem,
                pair.private_key_pem,
                request.domain,
                issuer_kind=IssuerKind.ACME,
            )
        except ValidationError as exc:
            raise AcquisitionError(self.name, f"CA returned unusable material: {exc.reason}") from exc

    def _restart_proxy(self, proxy: str) -> None:
        log.info("Restarting %s after ACME issuance", proxy)
        try:
            self._ctx.runner.start(proxy)
        except ProcessRunnerError as exc:
            # Deployment starts a stopped proxy, so the issuance outcome wins.
            log.error("%s did not come back after ACME issuance: %s", proxy, exc.detail)
