"""Certificate material entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from milou_ssl.core.types import IssuerKind


@dataclass(frozen=True)
class CertificateMaterial:
    """A certificate and its private key, plus the facts parsed from it.

    Material is never mutated.  A renewal produces a new instance and the
    superseded one is backed up before its files are replaced.
    """

    certificate_pem: bytes
    private_key_pem: bytes
    domain: str
    issuer_kind: IssuerKind
    not_before: datetime
    not_after: datetime
    subject: str = ""
    issuer: str = ""
    serial_number: str = ""
    san_dns: tuple[str, ...] = field(default_factory=tuple)
    san_ips: tuple[str, ...] = field(default_factory=tuple)
    key_size: int | None = None

    def days_remaining(self, now: datetime) -> int:
        """Whole days until ``not_after`` (negative once expired)."""
        return int((self.not_after - now).total_seconds() // 86400)
