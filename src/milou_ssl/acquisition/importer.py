"""Import strategy -- adopt a certificate/key pair supplied by the user."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from milou_ssl.acquisition.base import AcquisitionStrategy
from milou_ssl.core.errors import ValidationError
from milou_ssl.core.types import StrategyName

if TYPE_CHECKING:
    from milou_ssl.models.material import CertificateMaterial
    from milou_ssl.models.request import AcquisitionRequest

log = logging.getLogger(__name__)


def infer_key_path(cert_path: Path, name: str) -> Path | None:
    """Guess the key file that belongs to *cert_path*.

    Tries ``<base>.key``, then ``<name>.key`` in the same directory.
    """
    candidates = [
        cert_path.with_suffix(".key"),
        cert_path.parent / f"{name}.key",
    ]
    for candidate in candidates:
        if candidate != cert_path and candidate.is_file():
            return candidate
    return None


class ImportStrategy(AcquisitionStrategy):
    name = StrategyName.IMPORT

    def acquire(self, request: AcquisitionRequest) -> CertificateMaterial:
        if request.import_cert is None:
            msg = "import requires a certificate file"
            raise ValidationError(msg)
        cert_path = Path(request.import_cert)
        if request.import_key:
            key_path = Path(request.import_key)
        else:
            key_path = infer_key_path(cert_path, self._ctx.settings.certificates.name)
        if key_path is None:
            msg = f"no private key given and none found next to {cert_path}"
            raise ValidationError(msg)

        try:
            cert_pem = cert_path.read_bytes()
        except OSError as exc:
            msg = f"cannot read certificate {cert_path}: {exc.strerror or exc}"
            raise ValidationError(msg) from exc
        try:
            key_pem = key_path.read_bytes()
        except OSError as exc:
            msg = f"cannot read private key {key_path}: {exc.strerror or exc}"
            raise ValidationError(msg) from exc

        result = self._ctx.validator.require_valid(cert_pem, key_pem, request.domain)
        log.info("Imported certificate %s with key %s", cert_path, key_path)
        return result.material
