"""Crypto provider -- key generation, signing and certificate parsing.

All X.509 and key handling goes through :class:`CryptoProvider` so the
rest of the package never touches a crypto library directly.  The only
implementation, :class:`CryptographyProvider`, uses ``cryptography``.

Usage::

    from milou_ssl.crypto import CryptographyProvider

    crypto = CryptographyProvider()
    key = crypto.generate_key_pair(2048)
    cert = crypto.self_sign_certificate(key, common_name="localhost", ...)
"""

from __future__ import annotations

import abc
import hashlib
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from milou_ssl.core.errors import ValidationError
from milou_ssl.core.types import IssuerKind
from milou_ssl.crypto.cert_utils import build_eku, build_key_usage, build_san
from milou_ssl.models.material import CertificateMaterial

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificatePublicKeyTypes,
        PrivateKeyTypes,
    )

log = logging.getLogger(__name__)

# Issuer organisation / common-name fragments of public ACME CAs.
DEFAULT_ACME_ISSUER_PATTERNS: tuple[str, ...] = (
    "Let's Encrypt",
    "ZeroSSL",
    "Buypass",
    "Google Trust Services",
)


class CryptoProvider(abc.ABC):
    """Interface for the cryptographic operations the lifecycle needs."""

    @abc.abstractmethod
    def generate_key_pair(self, key_size: int) -> PrivateKeyTypes:
        """Generate a fresh RSA private key of *key_size* bits."""

    @abc.abstractmethod
    def self_sign_certificate(
        self,
        key: PrivateKeyTypes,
        *,
        common_name: str,
        organization: str | None,
        dns_names: tuple[str, ...],
        ip_addresses: tuple[str, ...] = (),
        validity_days: int = 365,
        key_usage: tuple[str, ...] = ("digital_signature", "key_encipherment"),
        key_usage_critical: bool = True,
        extended_key_usage: tuple[str, ...] = ("server_auth",),
    ) -> x509.Certificate:
        """Build and self-sign a server certificate for *key*."""

    @abc.abstractmethod
    def parse_certificate(self, pem: bytes) -> x509.Certificate:
        """Parse the leaf certificate from PEM data.

        Raises
        ------
        ValidationError
            If the data is not a PEM certificate.

        """

    @abc.abstractmethod
    def load_private_key(self, pem: bytes) -> PrivateKeyTypes:
        """Load an unencrypted PEM private key.

        Raises
        ------
        ValidationError
            If the data is not a usable private key.

        """

    @abc.abstractmethod
    def public_key_fingerprint(self, public_key: CertificatePublicKeyTypes) -> str:
        """SHA-256 hex digest of the DER SubjectPublicKeyInfo."""

    @abc.abstractmethod
    def certificate_pem(self, cert: x509.Certificate) -> bytes: ...

    @abc.abstractmethod
    def private_key_pem(self, key: PrivateKeyTypes) -> bytes: ...

    @abc.abstractmethod
    def classify_issuer(self, cert: x509.Certificate) -> IssuerKind: ...

    @abc.abstractmethod
    def build_material(
        self,
        certificate_pem: bytes,
        private_key_pem: bytes,
        domain: str,
        *,
        issuer_kind: IssuerKind | None = None,
    ) -> CertificateMaterial: ...

    @abc.abstractmethod
    def describe(
        self,
        material: CertificateMaterial,
        *,
        now: datetime | None = None,
    ) -> dict[str, Any]: ...

    # -- derived helpers ------------------------------------------------------

    def keys_match(self, cert: x509.Certificate, key: PrivateKeyTypes) -> bool:
        """Whether *key* is the private half of *cert*'s public key."""
        return self.public_key_fingerprint(cert.public_key()) == self.public_key_fingerprint(
            key.public_key(),
        )


class CryptographyProvider(CryptoProvider):
    """:class:`CryptoProvider` backed by the ``cryptography`` package.

    Parameters
    ----------
    acme_issuer_patterns:
        Issuer fragments that identify a certificate as ACME-issued.

    """

    def __init__(
        self,
        acme_issuer_patterns: tuple[str, ...] = DEFAULT_ACME_ISSUER_PATTERNS,
    ) -> None:
        self._acme_patterns = tuple(p.lower() for p in acme_issuer_patterns)

    def generate_key_pair(self, key_size: int) -> rsa.RSAPrivateKey:
        log.debug("Generating %d-bit RSA key", key_size)
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    def self_sign_certificate(
        self,
        key: PrivateKeyTypes,
        *,
        common_name: str,
        organization: str | None,
        dns_names: tuple[str, ...],
        ip_addresses: tuple[str, ...] = (),
        validity_days: int = 365,
        key_usage: tuple[str, ...] = ("digital_signature", "key_encipherment"),
        key_usage_critical: bool = True,
        extended_key_usage: tuple[str, ...] = ("server_auth",),
    ) -> x509.Certificate:
        attrs = []
        if organization:
            attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
        attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
        name = x509.Name(attrs)

        now = datetime.now(UTC)
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(build_san(dns_names, ip_addresses), critical=False)
            .add_extension(build_key_usage(key_usage), critical=key_usage_critical)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
                critical=False,
            )
        )
        if extended_key_usage:
            builder = builder.add_extension(build_eku(extended_key_usage), critical=False)
        return builder.sign(key, hashes.SHA256())

    def parse_certificate(self, pem: bytes) -> x509.Certificate:
        try:
            return x509.load_pem_x509_certificate(pem)
        except ValueError as exc:
            msg = f"certificate is not valid PEM: {exc}"
            raise ValidationError(msg) from exc

    def load_private_key(self, pem: bytes) -> PrivateKeyTypes:
        try:
            return serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError) as exc:
            msg = f"private key is not a valid unencrypted PEM key: {exc}"
            raise ValidationError(msg) from exc

    def public_key_fingerprint(self, public_key: CertificatePublicKeyTypes) -> str:
        der = public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return hashlib.sha256(der).hexdigest()

    def certificate_pem(self, cert: x509.Certificate) -> bytes:
        return cert.public_bytes(serialization.Encoding.PEM)

    def private_key_pem(self, key: PrivateKeyTypes) -> bytes:
        return key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )

    # -- material helpers -----------------------------------------------------

    def classify_issuer(self, cert: x509.Certificate) -> IssuerKind:
        """Derive the provenance of *cert* from its issuer field."""
        issuer = cert.issuer.rfc4514_string()
        if not issuer:
            return IssuerKind.UNKNOWN
        if cert.issuer == cert.subject:
            return IssuerKind.SELF_SIGNED
        lowered = issuer.lower()
        if any(pattern in lowered for pattern in self._acme_patterns):
            return IssuerKind.ACME
        return IssuerKind.IMPORTED

    def build_material(
        self,
        certificate_pem: bytes,
        private_key_pem: bytes,
        domain: str,
        *,
        issuer_kind: IssuerKind | None = None,
    ) -> CertificateMaterial:
        """Parse a PEM pair into :class:`CertificateMaterial`.

        The pair is not checked for consistency here; that is the
        validator's job.

        Raises
        ------
        ValidationError
            If either half cannot be parsed.

        """
        cert = self.parse_certificate(certificate_pem)
        key = self.load_private_key(private_key_pem)
        dns_names, ip_addresses = subject_alt_names(cert)
        return CertificateMaterial(
            certificate_pem=certificate_pem,
            private_key_pem=private_key_pem,
            domain=domain,
            issuer_kind=issuer_kind or self.classify_issuer(cert),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            serial_number=format(cert.serial_number, "x"),
            san_dns=dns_names,
            san_ips=ip_addresses,
            key_size=getattr(key, "key_size", None),
        )

    def describe(self, material: CertificateMaterial, *, now: datetime | None = None) -> dict[str, Any]:
        """Human-oriented summary of *material* for ``status`` output."""
        cert = self.parse_certificate(material.certificate_pem)
        now = now or datetime.now(UTC)
        public_key = cert.public_key()
        if isinstance(public_key, rsa.RSAPublicKey):
            key_type = f"RSA {public_key.key_size}"
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            key_type = f"EC {public_key.curve.name}"
        else:
            key_type = type(public_key).__name__
        algorithm = cert.signature_hash_algorithm
        return {
            "domain": material.domain,
            "subject": material.subject,
            "issuer": material.issuer,
            "issuer_kind": material.issuer_kind.value,
            "serial_number": material.serial_number,
            "signature_algorithm": cert.signature_algorithm_oid._name,  # noqa: SLF001
            "signature_hash": algorithm.name if algorithm else None,
            "key": key_type,
            "san_dns": list(material.san_dns),
            "san_ips": list(material.san_ips),
            "not_before": material.not_before.isoformat(),
            "not_after": material.not_after.isoformat(),
            "days_remaining": material.days_remaining(now),
            "fingerprint_sha256": cert.fingerprint(hashes.SHA256()).hex(),
        }


def subject_alt_names(cert: x509.Certificate) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return ``(dns_names, ip_addresses)`` from the SAN extension."""
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return (), ()
    dns_names = tuple(san.get_values_for_type(x509.DNSName))
    ip_addresses = tuple(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
    return dns_names, ip_addresses


def common_name(cert: x509.Certificate) -> str | None:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = attrs[0].value
    return value.decode() if isinstance(value, bytes) else value
