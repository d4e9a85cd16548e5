"""Shared certificate-building helpers.

Provides key-usage, extended-key-usage and subject-alternative-name
builders used by the self-signed strategy.
"""

from __future__ import annotations

import ipaddress

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

# ---------------------------------------------------------------------------
# Key usage / EKU mappings
# ---------------------------------------------------------------------------

_KEY_USAGE_FIELDS = (
    "digital_signature",
    "content_commitment",
    "key_encipherment",
    "data_encipherment",
    "key_agreement",
    "key_cert_sign",
    "crl_sign",
)

_EKU_OIDS = {
    "server_auth": ExtendedKeyUsageOID.SERVER_AUTH,
    "client_auth": ExtendedKeyUsageOID.CLIENT_AUTH,
}


def build_key_usage(usages: tuple[str, ...]) -> x509.KeyUsage:
    """Build an :class:`x509.KeyUsage` extension from usage names."""
    unknown = set(usages) - set(_KEY_USAGE_FIELDS)
    if unknown:
        msg = f"Unknown key usage {sorted(unknown)}; supported: {list(_KEY_USAGE_FIELDS)}"
        raise ValueError(msg)
    usage_set = set(usages)
    return x509.KeyUsage(
        digital_signature="digital_signature" in usage_set,
        content_commitment="content_commitment" in usage_set,
        key_encipherment="key_encipherment" in usage_set,
        data_encipherment="data_encipherment" in usage_set,
        key_agreement="key_agreement" in usage_set,
        key_cert_sign="key_cert_sign" in usage_set,
        crl_sign="crl_sign" in usage_set,
        encipher_only=False,
        decipher_only=False,
    )


def build_eku(ekus: tuple[str, ...]) -> x509.ExtendedKeyUsage:
    """Build an :class:`x509.ExtendedKeyUsage` extension from EKU names."""
    oids = []
    for name in ekus:
        oid = _EKU_OIDS.get(name)
        if oid is None:
            msg = f"Unknown extended key usage '{name}'; supported: {sorted(_EKU_OIDS)}"
            raise ValueError(msg)
        oids.append(oid)
    return x509.ExtendedKeyUsage(oids)


def build_san(
    dns_names: tuple[str, ...],
    ip_addresses: tuple[str, ...] = (),
) -> x509.SubjectAlternativeName:
    """Build a SAN extension from DNS names and IP address literals."""
    entries: list[x509.GeneralName] = [x509.DNSName(name) for name in dns_names]
    entries.extend(x509.IPAddress(ipaddress.ip_address(ip)) for ip in ip_addresses)
    return x509.SubjectAlternativeName(entries)


def is_ip_literal(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True
