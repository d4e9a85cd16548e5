"""Self-signed strategy -- generate a key and a certificate locally.

``localhost`` and other local-only names get a 2048-bit key and SANs
covering the loopback names and addresses; real domains get a 4096-bit
key and SANs for the domain and its wildcard.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from milou_ssl.acquisition.base import AcquisitionStrategy
from milou_ssl.collaborators.resolver import looks_local
from milou_ssl.core.errors import AcquisitionError
from milou_ssl.core.types import IssuerKind, StrategyName
from milou_ssl.crypto.cert_utils import is_ip_literal

if TYPE_CHECKING:
    from milou_ssl.models.material import CertificateMaterial
    from milou_ssl.models.request import AcquisitionRequest

log = logging.getLogger(__name__)

_LOCALHOST_DNS = ("localhost", "*.localhost")
_LOCALHOST_IPS = ("127.0.0.1", "::1")


class SelfSignedStrategy(AcquisitionStrategy):
    name = StrategyName.SELF_SIGNED

    def acquire(self, request: AcquisitionRequest) -> CertificateMaterial:
        domain = request.domain.strip().lower()
        cfg = self._ctx.settings.certificates.self_signed
        crypto = self._ctx.crypto

        if request.token is not None:
            request.token.raise_if_cancelled(self.name)

        if domain == "localhost":
            key_size = cfg.localhost_key_size
            organization = cfg.localhost_organization
            dns_names, ips = _LOCALHOST_DNS, _LOCALHOST_IPS
            key_usage = ("digital_signature", "key_encipherment", "data_encipherment")
        elif is_ip_literal(domain):
            key_size = cfg.localhost_key_size
            organization = cfg.localhost_organization
            dns_names, ips = (), (domain,)
            key_usage = ("digital_signature", "key_encipherment")
        else:
            key_size = cfg.localhost_key_size if looks_local(domain) else cfg.domain_key_size
            organization = cfg.organization
            dns_names, ips = (domain, f"*.{domain}"), ()
            key_usage = ("digital_signature", "key_encipherment")

        log.info("Generating self-signed certificate for %s (RSA %d)", domain, key_size)
        try:
            key = crypto.generate_key_pair(key_size)
            cert = crypto.self_sign_certificate(
                key,
                common_name=domain,
                organization=organization,
                dns_names=dns_names,
                ip_addresses=ips,
                validity_days=cfg.validity_days,
                key_usage=key_usage,
            )
        except ValueError as exc:
            raise AcquisitionError(self.name, str(exc)) from exc

        return crypto.build_material(
            crypto.certificate_pem(cert),
            crypto.private_key_pem(key),
            domain,
            issuer_kind=IssuerKind.SELF_SIGNED,
        )
