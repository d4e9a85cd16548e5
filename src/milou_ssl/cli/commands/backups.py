"""Backup subcommands: backup, backups, restore, migrate."""

from __future__ import annotations

import logging
import sys

from milou_ssl.core.errors import EXIT_OK

log = logging.getLogger(__name__)


def _emit(line: str) -> None:
    sys.stdout.write(f"{line}\n")


def run_backup(manager, args) -> int:
    """Handle ``backup``."""
    record = manager.backup(args.path, reason=args.reason)
    _emit(f"backed up to {record.cert_path}")
    return EXIT_OK


def run_backups(manager, args) -> int:
    """Handle ``backups`` (list, optionally prune)."""
    if args.prune is not None:
        removed = manager.prune(args.path, keep=args.prune)
        _emit(f"pruned {removed} backup(s)")
    for record in manager.list_backups(args.path):
        expires = f"{record.not_after:%Y-%m-%d}" if record.not_after else "?"
        _emit(f"{record.cert_path.stem}  {record.reason}  expires {expires}  {record.subject}")
    return EXIT_OK


def run_restore(manager, args) -> int:
    """Handle ``restore``."""
    record = manager.restore(args.path, name=args.name)
    _emit(f"restored {record.cert_path.stem}")
    return EXIT_OK


def run_migrate(manager, args) -> int:
    """Handle ``migrate``."""
    source = manager.migrate(args.path)
    if source is None:
        _emit("nothing to migrate")
    else:
        _emit(f"migrated certificates from {source.directory}")
    return EXIT_OK
