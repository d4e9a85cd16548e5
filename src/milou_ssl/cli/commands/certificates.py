"""Certificate subcommands: ensure, validate, renew, deploy, status."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from milou_ssl.core.cancellation import CancellationToken
from milou_ssl.core.errors import EXIT_FAILURE, EXIT_OK
from milou_ssl.core.types import StrategyName

log = logging.getLogger(__name__)


def _domain(manager, args) -> str:
    return args.domain or manager.settings.domain


def _emit(line: str) -> None:
    sys.stdout.write(f"{line}\n")


def run_ensure(manager, args) -> int:
    """Handle ``ensure``."""
    domain = _domain(manager, args)
    token = CancellationToken(args.timeout) if args.timeout else None
    result = manager.ensure(
        domain,
        args.path,
        StrategyName(args.strategy),
        deploy=not args.no_deploy,
        email=args.email,
        import_cert=Path(args.cert) if args.cert else None,
        import_key=Path(args.key) if args.key else None,
        token=token,
    )
    if not result.changed:
        _emit(f"certificate for {domain} is valid; nothing to do")
    else:
        kind = result.material.issuer_kind if result.material else "unknown"
        _emit(f"installed {kind} certificate for {domain} (strategy: {result.strategy})")
        if result.fell_back:
            _emit("warning: ACME issuance failed, a self-signed certificate is in use")
    return EXIT_OK


def run_validate(manager, args) -> int:
    """Handle ``validate``."""
    domain = _domain(manager, args)
    result = manager.validate(args.path, domain)
    if not result.ok:
        _emit(f"invalid: {result.reason}")
        return EXIT_FAILURE
    _emit(f"valid for {domain}: {result.days_until_expiry} day(s) remaining")
    for warning in result.warnings:
        _emit(f"warning: {warning}")
    return EXIT_OK


def run_renew(manager, args) -> int:
    """Handle ``renew``."""
    domain = _domain(manager, args)
    if args.check:
        decision = manager.check_renewal(args.path, domain)
        _emit(f"renewal: {decision.action} (days remaining: {decision.days_remaining})")
        return EXIT_OK
    result = manager.renew_if_needed(
        args.path,
        domain,
        strategy=StrategyName(args.strategy) if args.strategy else None,
        force=args.force,
        deploy=False if args.no_deploy else None,
    )
    if result.changed:
        _emit(f"renewed certificate for {domain}; valid until {result.material.not_after:%Y-%m-%d}")
    else:
        _emit(f"renewal not needed for {domain} ({result.decision.days_remaining} day(s) remaining)")
    return EXIT_OK


def run_deploy(manager, args) -> int:
    """Handle ``deploy``."""
    domain = _domain(manager, args)
    state = manager.deploy(args.path, domain)
    _emit(f"deployment {state}")
    return EXIT_OK


def run_status(manager, args) -> int:
    """Handle ``status``."""
    info = manager.status(args.path, _domain(manager, args))
    _emit(json.dumps(info, indent=2, default=str))
    return EXIT_OK if info["valid"] else EXIT_FAILURE
