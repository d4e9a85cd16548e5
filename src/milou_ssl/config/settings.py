"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.  The
loader hands the raw (env-resolved) mapping to :func:`build_settings`
and the rest of the package only ever reads the resulting tree.

Access pattern::

    from milou_ssl.config import load_settings

    settings = load_settings("milou-ssl.yaml")
    print(settings.proxy.container, settings.renewal.threshold_days)
"""

from __future__ import annotations

from dataclasses import dataclass

from milou_ssl.crypto.provider import DEFAULT_ACME_ISSUER_PATTERNS

# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelfSignedSettings:
    """Parameters for locally generated certificates."""

    validity_days: int
    localhost_key_size: int
    domain_key_size: int
    organization: str
    localhost_organization: str


@dataclass(frozen=True)
class CertificateSettings:
    """Where certificates live and how strictly they are validated."""

    path: str
    name: str
    warning_days: int
    strict_domain_match: bool
    lock_timeout_seconds: float
    self_signed: SelfSignedSettings


def _build_certificates(data: dict | None) -> CertificateSettings:
    d = data or {}
    s = d.get("self_signed") or {}
    return CertificateSettings(
        path=d.get("path", "./ssl"),
        name=d.get("name", "milou"),
        warning_days=d.get("warning_days", 30),
        strict_domain_match=d.get("strict_domain_match", False),
        lock_timeout_seconds=float(d.get("lock_timeout_seconds", 30)),
        self_signed=SelfSignedSettings(
            validity_days=s.get("validity_days", 365),
            localhost_key_size=s.get("localhost_key_size", 2048),
            domain_key_size=s.get("domain_key_size", 4096),
            organization=s.get("organization", "Milou"),
            localhost_organization=s.get("localhost_organization", "Milou Development"),
        ),
    )


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkspaceSettings:
    """Project layout used to redirect relative certificate paths."""

    project_dir_name: str
    deploy_subdir: str


def _build_workspace(data: dict | None) -> WorkspaceSettings:
    d = data or {}
    return WorkspaceSettings(
        project_dir_name=d.get("project_dir_name", "milou-cli"),
        deploy_subdir=d.get("deploy_subdir", "static"),
    )


# ---------------------------------------------------------------------------
# ACME
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmeSettings:
    """ACME (HTTP-01, standalone responder) issuance settings."""

    email: str | None
    staging: bool
    certbot_path: str
    config_dir: str
    timeout_seconds: int
    http_port: int
    require_root: bool
    issuer_patterns: tuple[str, ...]


def _build_acme(data: dict | None) -> AcmeSettings:
    d = data or {}
    return AcmeSettings(
        email=d.get("email"),
        staging=d.get("staging", False),
        certbot_path=d.get("certbot_path", "certbot"),
        config_dir=d.get("config_dir", "/etc/letsencrypt"),
        timeout_seconds=d.get("timeout_seconds", 300),
        http_port=d.get("http_port", 80),
        require_root=d.get("require_root", True),
        issuer_patterns=tuple(d.get("issuer_patterns", DEFAULT_ACME_ISSUER_PATTERNS)),
    )


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProxySettings:
    """Reverse-proxy container the certificate is deployed into."""

    enabled: bool
    container: str
    docker_base_url: str | None
    cert_path: str
    key_path: str
    syntax_check_command: tuple[str, ...]
    reload_command: tuple[str, ...]
    start_timeout_seconds: int
    probe_enabled: bool
    probe_timeout_seconds: float


def _build_proxy(data: dict | None) -> ProxySettings:
    d = data or {}
    return ProxySettings(
        enabled=d.get("enabled", True),
        container=d.get("container", "milou-nginx"),
        docker_base_url=d.get("docker_base_url"),
        cert_path=d.get("cert_path", "/etc/ssl/milou.crt"),
        key_path=d.get("key_path", "/etc/ssl/milou.key"),
        syntax_check_command=tuple(d.get("syntax_check_command", ["nginx", "-t"])),
        reload_command=tuple(d.get("reload_command", ["nginx", "-s", "reload"])),
        start_timeout_seconds=d.get("start_timeout_seconds", 10),
        probe_enabled=d.get("probe_enabled", True),
        probe_timeout_seconds=float(d.get("probe_timeout_seconds", 5)),
    )


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenewalSettings:
    """When to renew and how often the background worker checks."""

    threshold_days: int
    check_interval_seconds: int
    deploy: bool


def _build_renewal(data: dict | None) -> RenewalSettings:
    d = data or {}
    return RenewalSettings(
        threshold_days=d.get("threshold_days", 30),
        check_interval_seconds=d.get("check_interval_seconds", 86400),
        deploy=d.get("deploy", True),
    )


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DnsSettings:
    """Resolver used for the public-reachability precondition."""

    resolvers: tuple[str, ...]
    timeout_seconds: float


def _build_dns(data: dict | None) -> DnsSettings:
    d = data or {}
    return DnsSettings(
        resolvers=tuple(d.get("resolvers", [])),
        timeout_seconds=float(d.get("timeout_seconds", 5)),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format, optional file)."""

    level: str
    format: str
    file: str | None
    max_file_size_bytes: int
    backup_count: int


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
        file=d.get("file"),
        max_file_size_bytes=d.get("max_file_size_bytes", 10485760),
        backup_count=d.get("backup_count", 5),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MilouSettings:
    """Top-level settings tree."""

    domain: str
    automatic: bool
    certificates: CertificateSettings
    workspace: WorkspaceSettings
    acme: AcmeSettings
    proxy: ProxySettings
    renewal: RenewalSettings
    dns: DnsSettings
    logging: LoggingSettings


def build_settings(data: dict) -> MilouSettings:
    """Build the full typed settings tree from raw config data.

    Called by the loader after environment-variable resolution and
    cross-field validation.
    """
    return MilouSettings(
        domain=data.get("domain", "localhost"),
        automatic=data.get("automatic", False),
        certificates=_build_certificates(data.get("certificates")),
        workspace=_build_workspace(data.get("workspace")),
        acme=_build_acme(data.get("acme")),
        proxy=_build_proxy(data.get("proxy")),
        renewal=_build_renewal(data.get("renewal")),
        dns=_build_dns(data.get("dns")),
        logging=_build_logging(data.get("logging")),
    )
