"""Acquisition Engine -- choose a strategy, obtain material, install it.

Strategy policy lives here rather than in the strategies:

* ``auto`` picks ACME for public-looking domains and self-signed for
  local names (``localhost``, ``*.local``, IP literals).
* An ACME failure falls back to self-signed, with a warning, and asks
  for confirmation when running interactively.
* ACME precondition failures are fatal only when ACME was requested
  explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from milou_ssl.acquisition.registry import load_strategy
from milou_ssl.collaborators.resolver import looks_local
from milou_ssl.core.errors import AcquisitionCancelled, AcquisitionError, PreconditionError
from milou_ssl.core.types import StrategyName
from milou_ssl.storage.files import write_pair

if TYPE_CHECKING:
    from milou_ssl.acquisition.base import StrategyContext
    from milou_ssl.models.backup import BackupRecord
    from milou_ssl.models.location import CertificateLocation
    from milou_ssl.models.material import CertificateMaterial
    from milou_ssl.models.request import AcquisitionRequest
    from milou_ssl.storage.backup import BackupManager

log = logging.getLogger(__name__)


class AcquisitionEngine:
    """Run acquisition strategies and install their output.

    Parameters
    ----------
    context:
        Collaborators handed to every strategy.
    backups:
        Used to preserve superseded material before it is replaced.
    confirm:
        Asked before falling back from ACME to self-signed when the
        configuration is not in automatic mode.  ``None`` never asks.

    """

    def __init__(
        self,
        context: StrategyContext,
        backups: BackupManager,
        *,
        confirm: Callable[[str], bool] | None = None,
        loader=load_strategy,
    ) -> None:
        self._ctx = context
        self._backups = backups
        self._confirm = confirm
        self._load = loader

    @staticmethod
    def choose_strategy(domain: str, hint: StrategyName | str) -> StrategyName | str:
        """Resolve ``auto`` into a concrete strategy for *domain*."""
        if hint != StrategyName.AUTO:
            return hint
        return StrategyName.SELF_SIGNED if looks_local(domain) else StrategyName.ACME

    def acquire(
        self,
        request: AcquisitionRequest,
        *,
        allow_fallback: bool = True,
    ) -> tuple[CertificateMaterial, StrategyName | str, bool]:
        """Obtain material for *request*.

        Returns
        -------
        tuple
            ``(material, strategy_used, fell_back)``.

        Raises
        ------
        AcquisitionError
            If the chosen strategy fails and no fallback applies.
        PreconditionError
            If explicitly requested ACME cannot run here.

        """
        strategy = self.choose_strategy(request.domain, request.strategy)
        if strategy != StrategyName.ACME:
            material = self._load(str(strategy), self._ctx).acquire(replace(request, strategy=strategy))
            return material, strategy, False

        try:
            material = self._load(StrategyName.ACME, self._ctx).acquire(replace(request, strategy=strategy))
        except AcquisitionCancelled:
            raise
        except PreconditionError as exc:
            if request.strategy == StrategyName.ACME or not allow_fallback:
                raise
            log.warning("ACME not possible for %s (%s); using a self-signed certificate", request.domain, exc)
        except AcquisitionError as exc:
            if not allow_fallback:
                raise
            log.warning("ACME issuance for %s failed (%s); falling back to self-signed", request.domain, exc.cause)
            if not self._fallback_confirmed(request.domain, exc):
                raise
        else:
            return material, StrategyName.ACME, False

        fallback = replace(request, strategy=StrategyName.SELF_SIGNED)
        material = self._load(StrategyName.SELF_SIGNED, self._ctx).acquire(fallback)
        return material, StrategyName.SELF_SIGNED, True

    def install(
        self,
        material: CertificateMaterial,
        location: CertificateLocation,
        *,
        reason: str,
    ) -> BackupRecord | None:
        """Validate *material*, back up what it replaces, write it.

        Nothing on disk changes unless validation passes.

        Raises
        ------
        ValidationError
            If *material* fails a hard check.

        """
        self._ctx.validator.require_valid(material.certificate_pem, material.private_key_pem, material.domain)
        record = None
        if location.has_material():
            record = self._backups.backup(location, reason=reason)
        write_pair(location.cert_path, material.certificate_pem, location.key_path, material.private_key_pem)
        log.info("Installed %s certificate for %s in %s", material.issuer_kind, material.domain, location.directory)
        return record

    def _fallback_confirmed(self, domain: str, exc: AcquisitionError) -> bool:
        if self._ctx.settings.automatic or self._confirm is None:
            return True
        question = f"ACME issuance for {domain} failed ({exc.cause}). Use a self-signed certificate instead?"
        return self._confirm(question)
