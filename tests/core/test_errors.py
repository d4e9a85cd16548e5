"""Tests for milou_ssl.core.errors and milou_ssl.core.cancellation."""

from __future__ import annotations

import time

import pytest

from milou_ssl.config import ConfigValidationError
from milou_ssl.core.cancellation import CancellationToken
from milou_ssl.core.errors import (
    EXIT_FAILURE,
    EXIT_PRECONDITION,
    AcquisitionCancelled,
    AcquisitionError,
    CertificateError,
    DeploymentError,
    PathError,
    PreconditionError,
    ValidationError,
    exit_code_for,
)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class TestExitCodes:
    @pytest.mark.parametrize(
        "exc,code",
        [
            (PathError("no dir"), EXIT_PRECONDITION),
            (PreconditionError("not root"), EXIT_PRECONDITION),
            (AcquisitionError("acme", "boom"), EXIT_FAILURE),
            (ValidationError("expired"), EXIT_FAILURE),
            (DeploymentError("syntax-check", "bad config"), EXIT_FAILURE),
            (ConfigValidationError(["bad"]), EXIT_PRECONDITION),
            (RuntimeError("unexpected"), EXIT_FAILURE),
        ],
    )
    def test_mapping(self, exc, code):
        assert exit_code_for(exc) == code


# ---------------------------------------------------------------------------
# Error attributes
# ---------------------------------------------------------------------------


class TestErrorAttributes:
    def test_acquisition_error_carries_strategy_and_cause(self):
        exc = AcquisitionError("acme", "rate limited", retryable=True)
        assert exc.strategy == "acme"
        assert exc.cause == "rate limited"
        assert exc.retryable is True
        assert "acme acquisition failed: rate limited" in str(exc)

    def test_cancelled_is_an_acquisition_error(self):
        exc = AcquisitionCancelled("acme")
        assert isinstance(exc, AcquisitionError)
        assert exc.retryable is True

    def test_validation_error_reason(self):
        assert ValidationError("key mismatch").reason == "key mismatch"

    @pytest.mark.parametrize(
        "stage,recoverable",
        [("syntax-check", True), ("copy", False), ("restart", False)],
    )
    def test_deployment_recoverable_only_at_syntax_check(self, stage, recoverable):
        assert DeploymentError(stage, "x").recoverable is recoverable

    def test_all_derive_from_base(self):
        for cls in (PathError, PreconditionError, ValidationError):
            assert issubclass(cls, CertificateError)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellationToken:
    def test_not_cancelled_initially(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.remaining() is None
        token.raise_if_cancelled("acme")

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AcquisitionCancelled, match="operation cancelled"):
            token.raise_if_cancelled("acme")

    def test_deadline(self):
        token = CancellationToken(timeout=0.01)
        time.sleep(0.02)
        assert token.cancelled is True
        assert token.remaining() == 0.0
        with pytest.raises(AcquisitionCancelled, match="deadline exceeded"):
            token.raise_if_cancelled("self-signed")
