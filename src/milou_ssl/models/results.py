"""Outcomes of validation, renewal decisions and lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from milou_ssl.core.types import RenewalAction

if TYPE_CHECKING:
    from milou_ssl.core.types import DeployState, StrategyName
    from milou_ssl.models.backup import BackupRecord
    from milou_ssl.models.material import CertificateMaterial


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a certificate/key pair.

    ``ok`` is ``False`` on any hard failure (missing, unparseable,
    mismatched pair, expired).  Soft issues (expiring soon, domain not
    covered) are reported in ``warnings`` and leave ``ok`` untouched.
    """

    ok: bool
    reason: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)
    days_until_expiry: int | None = None
    domain_matches: bool | None = None
    expiring_soon: bool = False
    material: CertificateMaterial | None = None

    @property
    def usable_for_domain(self) -> bool:
        """Valid and bound to the requested domain."""
        return self.ok and self.domain_matches is not False


@dataclass(frozen=True)
class RenewalDecision:
    action: RenewalAction
    days_remaining: int | None = None
    reason: str | None = None

    @property
    def renewal_required(self) -> bool:
        return self.action is not RenewalAction.NOT_NEEDED


@dataclass(frozen=True)
class OperationResult:
    """What ``ensure`` or ``renew_if_needed`` did."""

    material: CertificateMaterial | None
    changed: bool
    strategy: StrategyName | None = None
    fell_back: bool = False
    backup: BackupRecord | None = None
    decision: RenewalDecision | None = None
    deploy_state: DeployState | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)
