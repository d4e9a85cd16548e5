"""milou-ssl command-line entry point.

Usage::

    milou-ssl ensure --domain localhost --path ./ssl
    milou-ssl -c milou-ssl.yaml --auto ensure --domain example.com
    milou-ssl validate --domain example.com
    milou-ssl renew --domain example.com
    milou-ssl deploy --domain example.com
    milou-ssl backup
    milou-ssl -c milou-ssl.yaml --validate-only
    python -m milou_ssl status --domain example.com

Exit codes: ``0`` success, ``1`` recoverable or validation failure,
``2`` configuration or precondition error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

log = logging.getLogger(__name__)

_STRATEGY_CHOICES = ("auto", "self-signed", "acme", "import")


def _get_version() -> str:
    from milou_ssl import __version__

    return __version__


def _add_location_args(parser: argparse.ArgumentParser, *, domain: bool = True) -> None:
    if domain:
        parser.add_argument("-d", "--domain", help="Domain the certificate is for (default: config domain).")
    parser.add_argument("-p", "--path", help="Certificate directory (default: config certificates.path).")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="milou-ssl",
        description="Milou SSL: certificate lifecycle manager for the Milou reverse proxy",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        help="Path to a YAML configuration file (optional).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--auto",
        action="store_true",
        default=False,
        help="Non-interactive mode: fall back from ACME to self-signed without asking.",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # ensure
    ensure = subparsers.add_parser("ensure", help="Make sure a valid certificate exists and is deployed")
    _add_location_args(ensure)
    ensure.add_argument("-s", "--strategy", choices=_STRATEGY_CHOICES, default="auto")
    ensure.add_argument("--cert", help="Certificate file to import (with --strategy import).")
    ensure.add_argument("--key", help="Private key file to import (inferred when omitted).")
    ensure.add_argument("--email", help="ACME contact email.")
    ensure.add_argument("--no-deploy", action="store_true", default=False, help="Do not push into the proxy.")
    ensure.add_argument("--timeout", type=float, help="Give up acquisition after this many seconds.")

    # validate
    validate = subparsers.add_parser("validate", help="Validate the stored certificate")
    _add_location_args(validate)

    # renew
    renew = subparsers.add_parser("renew", help="Renew the certificate if it is close to expiry")
    _add_location_args(renew)
    renew.add_argument("--force", action="store_true", default=False, help="Renew regardless of expiry.")
    renew.add_argument("-s", "--strategy", choices=("self-signed", "acme"), help="Override the renewal strategy.")
    renew.add_argument("--no-deploy", action="store_true", default=False, help="Do not push into the proxy.")
    renew.add_argument("--check", action="store_true", default=False, help="Only report the renewal decision.")

    # watch
    watch = subparsers.add_parser("watch", help="Keep the certificate renewed in the foreground")
    _add_location_args(watch)

    # deploy
    deploy = subparsers.add_parser("deploy", help="Push the stored certificate into the proxy")
    _add_location_args(deploy)

    # status
    status = subparsers.add_parser("status", help="Show certificate details as JSON")
    _add_location_args(status)

    # backup
    backup = subparsers.add_parser("backup", help="Back up the stored certificate")
    _add_location_args(backup, domain=False)
    backup.add_argument("--reason", default="manual", help="Reason recorded in the backup metadata.")

    # backups
    backups = subparsers.add_parser("backups", help="List backups (newest first)")
    _add_location_args(backups, domain=False)
    backups.add_argument("--prune", type=int, metavar="KEEP", help="Delete all but the newest KEEP backups.")

    # restore
    restore = subparsers.add_parser("restore", help="Restore a backup (newest by default)")
    _add_location_args(restore, domain=False)
    restore.add_argument("--name", help="Backup file stem to restore, e.g. 20250101T000000000000Z-milou")

    # migrate
    migrate = subparsers.add_parser("migrate", help="Adopt certificates found in a common directory")
    _add_location_args(migrate, domain=False)

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    sys.stderr.write(f"error: {message}\n")


def _print_settings_summary(settings) -> None:
    sys.stdout.write(
        f"domain={settings.domain} path={settings.certificates.path} "
        f"proxy={settings.proxy.container if settings.proxy.enabled else 'disabled'} "
        f"renewal_threshold={settings.renewal.threshold_days}d\n",
    )


def _confirm(question: str) -> bool:
    """Ask a yes/no question on the terminal; anything but yes is no."""
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    from milou_ssl.core.errors import EXIT_PRECONDITION

    # -- load & validate config ---
    try:
        from milou_ssl.config import ConfigValidationError, load_settings

        settings = load_settings(args.config)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(EXIT_PRECONDITION)

    if args.auto:
        settings = replace(settings, automatic=True)

    # -- replace bootstrap logging with structured logging ---
    from milou_ssl.logging import configure_logging

    configure_logging(settings.logging, debug=args.debug)

    if args.validate_only:
        _print_settings_summary(settings)
        sys.exit(0)

    if args.command is None:
        parser.print_help(sys.stderr)
        sys.exit(EXIT_PRECONDITION)

    sys.exit(_dispatch(settings, args))


def _dispatch(settings, args) -> int:
    """Run the selected subcommand and map failures to exit codes."""
    from milou_ssl.core.errors import CertificateError, exit_code_for
    from milou_ssl.lifecycle.manager import CertificateManager

    interactive = not settings.automatic and sys.stdin.isatty()
    try:
        manager = CertificateManager.from_settings(settings, confirm=_confirm if interactive else None)
        command = args.command
        if command in ("ensure", "validate", "renew", "deploy", "status"):
            from milou_ssl.cli.commands import certificates

            return getattr(certificates, f"run_{command}")(manager, args)
        if command in ("backup", "backups", "restore", "migrate"):
            from milou_ssl.cli.commands import backups

            return getattr(backups, f"run_{command}")(manager, args)
        if command == "watch":
            from milou_ssl.cli.commands.watch import run_watch

            return run_watch(manager, args)
    except CertificateError as exc:
        if args.debug:
            log.exception("Command %s failed", args.command)
        _print_error(exc.detail)
        return exit_code_for(exc)
    _print_error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":
    main()
