"""Enumerated types shared across the certificate lifecycle.

All enums are :class:`enum.StrEnum` so their ``.value`` is a plain
string that serialises naturally into JSON backup metadata and log
records.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Certificate provenance
# ---------------------------------------------------------------------------


class IssuerKind(StrEnum):
    SELF_SIGNED = "self-signed"
    ACME = "acme"
    IMPORTED = "imported"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Acquisition strategies
# ---------------------------------------------------------------------------


class StrategyName(StrEnum):
    SELF_SIGNED = "self-signed"
    ACME = "acme"
    IMPORT = "import"
    AUTO = "auto"


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


class RenewalAction(StrEnum):
    NOT_NEEDED = "not-needed"
    NEEDED_SOON = "needed-soon"
    NEEDED_NOW = "needed-now"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Deployment
# ---------------------------------------------------------------------------


class DeployState(StrEnum):
    NOT_RUNNING = "not-running"
    STARTING = "starting"
    RUNNING = "running"
    CONFIG_VALIDATING = "config-validating"
    RELOADED = "reloaded"
    ROLLED_BACK = "rolled-back"


class DeployStage(StrEnum):
    START = "start"
    BACKUP = "backup"
    COPY = "copy"
    SYNTAX_CHECK = "syntax-check"
    RELOAD = "reload"
    RESTART = "restart"


# ---------------------------------------------------------------------------
# Port 80 ownership
# ---------------------------------------------------------------------------


class PortOwner(StrEnum):
    FREE = "free"
    PROXY = "proxy"
    OTHER = "other"
