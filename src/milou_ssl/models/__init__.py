"""Value objects for the certificate lifecycle.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from milou_ssl.models.backup import BackupRecord
from milou_ssl.models.location import CertificateLocation, WorkingContext
from milou_ssl.models.material import CertificateMaterial
from milou_ssl.models.request import AcquisitionRequest
from milou_ssl.models.results import OperationResult, RenewalDecision, ValidationResult

__all__ = [
    "AcquisitionRequest",
    "BackupRecord",
    "CertificateLocation",
    "CertificateMaterial",
    "OperationResult",
    "RenewalDecision",
    "ValidationResult",
    "WorkingContext",
]
