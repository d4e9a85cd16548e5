"""Structured logging configuration for milou-ssl.

Provides JSON and text formatters, an operation-context filter that
injects the current lifecycle operation and domain into every log
record, a ``SUCCESS`` level between INFO and WARNING, and a one-call
``configure_logging`` function driven by config settings.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from milou_ssl.config.settings import LoggingSettings

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "milou_operation",
    default=None,
)
_domain: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "milou_domain",
    default=None,
)

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # Context attributes (handled explicitly):
        "operation",
        "domain",
    }
)


def log_success(logger: logging.Logger, msg: str, *args, **kwargs) -> None:
    """Log *msg* at the ``SUCCESS`` level."""
    logger.log(SUCCESS, msg, *args, **kwargs)


@contextlib.contextmanager
def operation_context(operation: str, domain: str | None = None) -> Iterator[None]:
    """Tag every record logged inside the block with *operation* and *domain*."""
    op_token = _operation.set(operation)
    domain_token = _domain.set(domain)
    try:
        yield
    finally:
        _domain.reset(domain_token)
        _operation.reset(op_token)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for machine-readable logs.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }

        operation = getattr(record, "operation", None)
        if operation is not None:
            data["operation"] = operation

        domain = getattr(record, "domain", None)
        if domain is not None:
            data["domain"] = domain

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(operation)s %(domain)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class OperationContextFilter(logging.Filter):
    """Inject the current operation context into every log record.

    Adds ``operation`` and ``domain`` from :func:`operation_context`
    when one is active, otherwise falls back to ``"-"``.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "operation"):
            record.operation = _operation.get() or "-"  # type: ignore[attr-defined]
        if not hasattr(record, "domain"):
            record.domain = _domain.get() or "-"  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings, *, debug: bool = False) -> logging.Logger:
    """Configure the ``milou_ssl`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output and
    adds a rotating file handler when ``settings.file`` is set.

    Returns the root ``milou_ssl`` logger.
    """
    level = logging.DEBUG if debug else getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("milou_ssl")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    ctx_filter = OperationContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    if settings.file:
        try:
            from logging.handlers import RotatingFileHandler

            fh = RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_bytes,
                backupCount=settings.backup_count,
            )
            # File logs are always structured JSON
            fh.setFormatter(StructuredFormatter())
            fh.addFilter(ctx_filter)
            root.addHandler(fh)
        except OSError as exc:
            root.warning("Could not open log file %s: %s", settings.file, exc)

    # Quieten noisy third-party loggers
    for lib in ("docker", "urllib3", "urllib3.connectionpool"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
