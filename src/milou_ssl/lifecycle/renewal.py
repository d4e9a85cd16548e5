"""Renewal decisions.

:func:`decide` is a pure function of a certificate's ``not_after`` and
the current time; the orchestration that acts on it lives in
:class:`~milou_ssl.lifecycle.manager.CertificateManager`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from milou_ssl.core.types import IssuerKind, RenewalAction, StrategyName
from milou_ssl.models.results import RenewalDecision

if TYPE_CHECKING:
    from datetime import datetime

    from milou_ssl.models.material import CertificateMaterial


def decide(
    material: CertificateMaterial | None,
    *,
    now: datetime,
    threshold_days: int = 30,
) -> RenewalDecision:
    """Classify *material* as not-needed, needed-soon, needed-now or unknown."""
    if material is None:
        return RenewalDecision(RenewalAction.UNKNOWN, reason="no readable certificate")
    days = material.days_remaining(now)
    if material.not_after <= now:
        return RenewalDecision(RenewalAction.NEEDED_NOW, days_remaining=days, reason="certificate expired")
    if days < threshold_days:
        return RenewalDecision(RenewalAction.NEEDED_SOON, days_remaining=days)
    return RenewalDecision(RenewalAction.NOT_NEEDED, days_remaining=days)


def strategy_for(material: CertificateMaterial | None) -> StrategyName:
    """Strategy to renew *material* with: ACME stays ACME, the rest self-signs."""
    if material is not None and material.issuer_kind is IssuerKind.ACME:
        return StrategyName.ACME
    return StrategyName.SELF_SIGNED
