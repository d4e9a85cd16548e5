"""Validator -- is a certificate/key pair usable for a domain?

Hard failures (``ok=False``): missing or unreadable files, unparseable
PEM, a key that is not the certificate's pair, an expired certificate.
Soft issues (``warnings``): expiring within the warning window, domain
not covered by CN/SAN, overly permissive key file.  Domain mismatch
becomes a hard failure only with ``strict_domain_match``.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import stat
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from milou_ssl.core.errors import ValidationError
from milou_ssl.crypto.provider import common_name, subject_alt_names
from milou_ssl.models.results import ValidationResult

if TYPE_CHECKING:
    from pathlib import Path

    from milou_ssl.crypto.provider import CryptoProvider
    from milou_ssl.models.location import CertificateLocation

log = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400


def domain_matches(domain: str, dns_names: tuple[str, ...] | list[str], ip_addresses=()) -> bool:
    """Whether *domain* is covered by *dns_names* / *ip_addresses*.

    A wildcard name covers exactly one additional leftmost label:
    ``*.example.com`` matches ``www.example.com`` but neither
    ``example.com`` nor ``a.b.example.com``.
    """
    domain = domain.strip().lower().rstrip(".")
    if not domain:
        return False
    try:
        ip = ipaddress.ip_address(domain)
    except ValueError:
        ip = None
    if ip is not None:
        return any(ipaddress.ip_address(a) == ip for a in ip_addresses)

    for name in dns_names:
        candidate = name.strip().lower().rstrip(".")
        if candidate == domain:
            return True
        if candidate.startswith("*."):
            suffix = candidate[2:]
            label, _, rest = domain.partition(".")
            if label and rest == suffix:
                return True
    return False


class Validator:
    """Validate certificate material against a domain.

    Parameters
    ----------
    crypto:
        Provider used to parse and compare keys.
    warning_days:
        Certificates expiring in fewer days get a soft warning.
    strict_domain_match:
        Treat a domain not covered by the certificate as a hard failure.
    clock:
        Returns the current UTC time; injectable for tests.

    """

    def __init__(
        self,
        crypto: CryptoProvider,
        *,
        warning_days: int = 30,
        strict_domain_match: bool = False,
        clock=None,
    ) -> None:
        self._crypto = crypto
        self._warning_days = warning_days
        self._strict = strict_domain_match
        self._clock = clock or (lambda: datetime.now(UTC))

    def validate(self, location: CertificateLocation, domain: str) -> ValidationResult:
        """Validate the pair stored at *location* for *domain*."""
        if not location.cert_path.is_file():
            return ValidationResult(ok=False, reason=f"certificate not found: {location.cert_path}")
        if not location.key_path.is_file():
            return ValidationResult(ok=False, reason=f"private key not found: {location.key_path}")
        try:
            cert_pem = location.cert_path.read_bytes()
            key_pem = location.key_path.read_bytes()
        except OSError as exc:
            return ValidationResult(ok=False, reason=f"cannot read certificate files: {exc}")

        result = self.validate_material(cert_pem, key_pem, domain)
        key_warning = _key_permission_warning(location.key_path)
        if key_warning:
            result = replace(result, warnings=(*result.warnings, key_warning))
        return result

    def validate_material(self, cert_pem: bytes, key_pem: bytes, domain: str) -> ValidationResult:
        """Validate an in-memory PEM pair for *domain*."""
        try:
            cert = self._crypto.parse_certificate(cert_pem)
            key = self._crypto.load_private_key(key_pem)
        except ValidationError as exc:
            return ValidationResult(ok=False, reason=exc.reason)

        if not self._crypto.keys_match(cert, key):
            return ValidationResult(ok=False, reason="private key does not match certificate")

        now = self._clock()
        not_after = cert.not_valid_after_utc
        days = int((not_after - now).total_seconds() // _SECONDS_PER_DAY)
        warnings: list[str] = []

        dns_names, ip_addresses = subject_alt_names(cert)
        cn = common_name(cert)
        names = (*dns_names, cn) if cn else dns_names
        matches = domain_matches(domain, names, ip_addresses)

        if not_after <= now:
            return ValidationResult(
                ok=False,
                reason=f"certificate expired on {not_after:%Y-%m-%d}",
                days_until_expiry=days,
                domain_matches=matches,
            )
        if cert.not_valid_before_utc > now:
            warnings.append(f"certificate is not valid before {cert.not_valid_before_utc:%Y-%m-%d %H:%M}")

        if not matches:
            message = f"certificate does not cover domain '{domain}'"
            if self._strict:
                return ValidationResult(
                    ok=False,
                    reason=message,
                    days_until_expiry=days,
                    domain_matches=False,
                )
            warnings.append(message)

        expiring_soon = days < self._warning_days
        if expiring_soon:
            warnings.append(f"certificate expires in {days} day(s)")

        for w in warnings:
            log.warning("Validation warning: %s", w)

        material = self._crypto.build_material(cert_pem, key_pem, domain)
        return ValidationResult(
            ok=True,
            warnings=tuple(warnings),
            days_until_expiry=days,
            domain_matches=matches,
            expiring_soon=expiring_soon,
            material=material,
        )

    def require_valid(self, cert_pem: bytes, key_pem: bytes, domain: str) -> ValidationResult:
        """Like :meth:`validate_material` but raise on hard failure.

        Raises
        ------
        ValidationError
            If the pair fails a hard check.

        """
        result = self.validate_material(cert_pem, key_pem, domain)
        if not result.ok:
            raise ValidationError(result.reason or "certificate validation failed")
        return result


def _key_permission_warning(key_path: Path) -> str | None:
    try:
        mode = os.stat(key_path).st_mode
    except OSError:
        return None
    if mode & (stat.S_IRGRP | stat.S_IROTH | stat.S_IWGRP | stat.S_IWOTH):
        return (
            f"private key file '{key_path}' has overly permissive permissions "
            f"(mode={stat.S_IMODE(mode):o}); recommend chmod 600"
        )
    return None
