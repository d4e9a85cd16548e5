"""Logging setup for milou-ssl."""

from milou_ssl.logging.setup import (
    SUCCESS,
    OperationContextFilter,
    StructuredFormatter,
    TextFormatter,
    configure_logging,
    log_success,
    operation_context,
)

__all__ = [
    "SUCCESS",
    "OperationContextFilter",
    "StructuredFormatter",
    "TextFormatter",
    "configure_logging",
    "log_success",
    "operation_context",
]
