"""Error taxonomy for the certificate lifecycle.

Every failure surfaced to callers derives from
:class:`CertificateError`.  Each class carries the process exit code
the CLI maps it to:

* ``1`` -- recoverable failure (validation, acquisition, deployment).
* ``2`` -- configuration or precondition error.
"""

from __future__ import annotations

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PRECONDITION = 2


class CertificateError(Exception):
    """Base class for certificate lifecycle failures.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    exit_code = EXIT_FAILURE

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class PathError(CertificateError):
    """The storage directory cannot be created or written."""

    exit_code = EXIT_PRECONDITION


class PreconditionError(CertificateError):
    """A precondition for the requested operation is not met.

    Raised for missing privileges, unresolvable domains, a port held by
    a third party, or a location whose lock is held by another caller.
    """

    exit_code = EXIT_PRECONDITION


class AcquisitionError(CertificateError):
    """A strategy failed to produce certificate material.

    Parameters
    ----------
    strategy:
        Name of the strategy that failed.
    cause:
        Description of the underlying failure.

    """

    def __init__(self, strategy: str, cause: str, *, retryable: bool = False) -> None:
        self.strategy = strategy
        self.cause = cause
        super().__init__(f"{strategy} acquisition failed: {cause}", retryable=retryable)


class AcquisitionCancelled(AcquisitionError):
    """Acquisition was cancelled or exceeded its deadline."""

    def __init__(self, strategy: str, cause: str = "operation cancelled") -> None:
        super().__init__(strategy, cause, retryable=True)


class ValidationError(CertificateError):
    """Certificate material failed a hard validation check.

    Parameters
    ----------
    reason:
        Which check failed and why.

    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class DeploymentError(CertificateError):
    """Pushing material into the reverse proxy failed.

    Parameters
    ----------
    stage:
        The deployment stage that failed (see
        :class:`~milou_ssl.core.types.DeployStage`).
    detail:
        Human-readable description of the failure.

    """

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        super().__init__(f"deployment failed at {stage}: {detail}")

    @property
    def recoverable(self) -> bool:
        """``True`` when the previous runtime configuration is still live."""
        return self.stage == "syntax-check"


def exit_code_for(exc: BaseException) -> int:
    """Map an exception to the CLI exit code."""
    if isinstance(exc, CertificateError):
        return exc.exit_code
    from milou_ssl.config.loader import ConfigValidationError

    if isinstance(exc, ConfigValidationError):
        return EXIT_PRECONDITION
    return EXIT_FAILURE
