"""Acquisition request."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from milou_ssl.core.types import StrategyName

if TYPE_CHECKING:
    from milou_ssl.core.cancellation import CancellationToken


@dataclass(frozen=True)
class AcquisitionRequest:
    """Transient description of one attempt to obtain material."""

    domain: str
    strategy: StrategyName = StrategyName.AUTO
    email: str | None = None
    import_cert: Path | None = None
    import_key: Path | None = None
    token: CancellationToken | None = None
