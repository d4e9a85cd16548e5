"""Abstract base class for acquisition strategies.

All strategies (built-in and custom) inherit from
:class:`AcquisitionStrategy` and implement :meth:`acquire`, which turns
an :class:`AcquisitionRequest` into fresh :class:`CertificateMaterial`
or raises.  Strategies never touch the certificate location; storing,
backing up and deploying is the engine's job.
"""

from __future__ import annotations

import abc
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from milou_ssl.acquisition.ports import PortInspector
    from milou_ssl.collaborators.acme_client import AcmeClient
    from milou_ssl.collaborators.process import ProcessRunner
    from milou_ssl.collaborators.resolver import DomainResolver
    from milou_ssl.config.settings import MilouSettings
    from milou_ssl.core.types import StrategyName
    from milou_ssl.crypto.provider import CryptoProvider
    from milou_ssl.models.material import CertificateMaterial
    from milou_ssl.models.request import AcquisitionRequest
    from milou_ssl.validation.validator import Validator

log = logging.getLogger(__name__)


def _running_as_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


@dataclass
class StrategyContext:
    """Collaborators shared by all strategies.

    Only the crypto provider and validator are always required; the
    ACME strategy additionally needs a resolver, a port inspector and
    an ACME client.
    """

    settings: MilouSettings
    crypto: CryptoProvider
    validator: Validator
    runner: ProcessRunner | None = None
    resolver: DomainResolver | None = None
    acme_client: AcmeClient | None = None
    ports: PortInspector | None = None
    is_root: Callable[[], bool] = field(default=_running_as_root)


class AcquisitionStrategy(abc.ABC):
    """Base class for all acquisition strategy implementations.

    Parameters
    ----------
    context:
        Shared collaborators and settings.

    """

    name: ClassVar[StrategyName]

    def __init__(self, context: StrategyContext) -> None:
        self._ctx = context

    @abc.abstractmethod
    def acquire(self, request: AcquisitionRequest) -> CertificateMaterial:
        """Produce certificate material for ``request.domain``.

        Returns
        -------
        CertificateMaterial
            A certificate and its private key.

        Raises
        ------
        AcquisitionError
            On any failure producing the material.
        PreconditionError
            If the strategy cannot run in the current environment.
        ValidationError
            If supplied material is unusable (import).

        """

    def check_preconditions(self, request: AcquisitionRequest) -> None:  # noqa: B027
        """Verify the strategy can run.  Default implementation is a no-op.

        Raises
        ------
        PreconditionError
            If a precondition is not met.

        """
