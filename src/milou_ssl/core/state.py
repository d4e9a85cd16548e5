"""Deployment state machine.

Defines the valid transitions a deployment walks through while new
certificate material is pushed into the reverse proxy.  All transitions
are enforced via :func:`assert_transition`.

Usage::

    from milou_ssl.core.state import DEPLOY_TRANSITIONS, assert_transition
    from milou_ssl.core.types import DeployState

    assert_transition(
        DeployState.RUNNING, DeployState.CONFIG_VALIDATING,
        DEPLOY_TRANSITIONS,
    )
"""

from __future__ import annotations

import logging

from milou_ssl.core.types import DeployState

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Deployment: not-running -> starting -> running -> config-validating
#             -> reloaded | rolled-back.  reloaded & rolled-back are terminal.
# ---------------------------------------------------------------------------

DEPLOY_TRANSITIONS: dict[DeployState, frozenset[DeployState]] = {
    DeployState.NOT_RUNNING: frozenset({DeployState.STARTING}),
    DeployState.STARTING: frozenset({DeployState.RUNNING}),
    DeployState.RUNNING: frozenset({DeployState.CONFIG_VALIDATING}),
    DeployState.CONFIG_VALIDATING: frozenset(
        {
            DeployState.RELOADED,
            DeployState.ROLLED_BACK,
        }
    ),
    DeployState.RELOADED: frozenset(),
    DeployState.ROLLED_BACK: frozenset(),
}


def assert_transition(
    current: DeployState,
    target: DeployState,
    table: dict,
) -> None:
    """Raise :class:`ValueError` if *current* -> *target* is not allowed.

    Parameters
    ----------
    current:
        The current state.
    target:
        The desired new state.
    table:
        A transition table such as :data:`DEPLOY_TRANSITIONS`.

    """
    allowed = table.get(current)
    if allowed is None:
        msg = f"Unknown state {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(msg)


def log_transition(
    resource_type: str,
    resource_id,
    from_state,
    to_state,
    *,
    reason: str | None = None,
) -> None:
    """Emit a structured log entry for a state transition.

    Parameters
    ----------
    resource_type:
        What is transitioning, e.g. ``"deployment"``.
    resource_id:
        Identifier of the resource (container name, domain).
    from_state:
        The previous state value.
    to_state:
        The new state value.
    reason:
        Optional human-readable reason for the transition.

    """
    extra = {
        "event": "state_transition",
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "from_state": from_state.value if hasattr(from_state, "value") else str(from_state),
        "to_state": to_state.value if hasattr(to_state, "value") else str(to_state),
    }
    if reason:
        extra["reason"] = reason
    log.info(
        "%s %s: %s -> %s%s",
        resource_type,
        resource_id,
        extra["from_state"],
        extra["to_state"],
        f" ({reason})" if reason else "",
        extra=extra,
    )
