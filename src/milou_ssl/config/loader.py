"""Configuration loader.

Lifecycle::

    # 1. The CLI loads settings once, at startup
    settings = load_settings("/etc/milou/ssl.yaml")

    # 2. Settings are passed explicitly to every component
    manager = CertificateManager.from_settings(settings)

The config file is optional: without one every section takes its
defaults from :mod:`milou_ssl.config.settings`.  String values may
reference the environment with ``${VAR}`` or ``${VAR:-default}``, and a
small set of ``MILOU_*`` variables override the file.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from milou_ssl.config.settings import MilouSettings, build_settings

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

# Environment variable -> (section, key); section ``None`` is the root.
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "MILOU_DOMAIN": (None, "domain"),
    "MILOU_SSL_PATH": ("certificates", "path"),
    "MILOU_ACME_EMAIL": ("acme", "email"),
    "MILOU_AUTO": (None, "automatic"),
}

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})

_MIN_RSA_KEY_SIZE = 2048
_LOG_FORMATS = frozenset({"json", "text"})
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when cross-field validation finds one or more problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str, env: Mapping[str, str]) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = env.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    env: Mapping[str, str],
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path, env)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], env, child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path, env)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, env, child_path)


def _apply_env_overrides(data: dict, env: Mapping[str, str]) -> None:
    for var_name, (section, key) in _ENV_OVERRIDES.items():
        raw = env.get(var_name)
        if raw is None or raw == "":
            continue
        value: Any = raw.strip().lower() in _TRUE_VALUES if key == "automatic" else raw
        if section is None:
            data[key] = value
        else:
            target = data.get(section)
            if not isinstance(target, dict):
                target = {}
                data[section] = target
            target[key] = value
        log.debug("Config override from %s", var_name)


# ---------------------------------------------------------------------------
# Cross-field checks
# ---------------------------------------------------------------------------


def _check(data: dict) -> None:  # noqa: C901, PLR0912
    """Semantic & cross-field validation of the raw mapping."""
    errors: list[str] = []
    warnings: list[str] = []

    for section in ("certificates", "workspace", "acme", "proxy", "renewal", "dns", "logging"):
        value = data.get(section)
        if value is not None and not isinstance(value, dict):
            errors.append(f"{section} must be a mapping (got {type(value).__name__})")
    if errors:
        raise ConfigValidationError(errors)

    domain = data.get("domain", "localhost")
    if not isinstance(domain, str) or not domain.strip():
        errors.append("domain must be a non-empty string")
    elif domain.endswith(".") or " " in domain:
        errors.append(f"domain '{domain}' is not a valid host name")

    certs = data.get("certificates") or {}
    name = certs.get("name", "milou")
    if not name or "/" in str(name):
        errors.append(f"certificates.name must be a bare file name (got '{name}')")
    if certs.get("warning_days", 30) < 0:
        errors.append("certificates.warning_days must be >= 0")
    if certs.get("lock_timeout_seconds", 30) < 0:
        errors.append("certificates.lock_timeout_seconds must be >= 0")
    self_signed = certs.get("self_signed") or {}
    for key in ("localhost_key_size", "domain_key_size"):
        size = self_signed.get(key)
        if size is not None and size < _MIN_RSA_KEY_SIZE:
            errors.append(
                f"certificates.self_signed.{key} must be at least {_MIN_RSA_KEY_SIZE} (got {size})",
            )
    if self_signed.get("validity_days", 365) <= 0:
        errors.append("certificates.self_signed.validity_days must be > 0")

    acme = data.get("acme") or {}
    email = acme.get("email")
    if email and not _EMAIL_RE.match(email):
        errors.append(f"acme.email '{email}' is not a valid email address")
    if acme.get("timeout_seconds", 300) <= 0:
        errors.append("acme.timeout_seconds must be > 0")
    if acme.get("staging"):
        warnings.append("acme.staging is enabled; issued certificates will not be trusted")

    proxy = data.get("proxy") or {}
    for key in ("syntax_check_command", "reload_command"):
        command = proxy.get(key)
        if command is not None and (not isinstance(command, list) or not command):
            errors.append(f"proxy.{key} must be a non-empty list of arguments")
    if proxy.get("start_timeout_seconds", 10) <= 0:
        errors.append("proxy.start_timeout_seconds must be > 0")

    renewal = data.get("renewal") or {}
    threshold = renewal.get("threshold_days", 30)
    if threshold < 0:
        errors.append("renewal.threshold_days must be >= 0")
    if renewal.get("check_interval_seconds", 86400) <= 0:
        errors.append("renewal.check_interval_seconds must be > 0")
    if threshold < certs.get("warning_days", 30):
        warnings.append(
            "renewal.threshold_days is below certificates.warning_days; "
            "validation will warn before renewal triggers",
        )

    fmt = (data.get("logging") or {}).get("format", "text")
    if fmt not in _LOG_FORMATS:
        errors.append(f"logging.format must be one of {sorted(_LOG_FORMATS)} (got '{fmt}')")

    for w in warnings:
        log.warning("Config warning: %s", w)

    if errors:
        raise ConfigValidationError(errors)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def settings_from_dict(
    data: dict | None,
    env: Mapping[str, str] | None = None,
) -> MilouSettings:
    """Resolve, override, validate and build settings from a mapping.

    *data* is modified in place.
    """
    env = os.environ if env is None else env
    data = data if data is not None else {}
    if not isinstance(data, dict):
        msg = f"configuration root must be a mapping (got {type(data).__name__})"
        raise ConfigValidationError([msg])
    _resolve_env_vars(data, env)
    _apply_env_overrides(data, env)
    _check(data)
    return build_settings(data)


def load_settings(
    config_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> MilouSettings:
    """Load settings from an optional YAML file.

    Parameters
    ----------
    config_file:
        Path to a YAML config file, or ``None`` for defaults.
    env:
        Environment mapping; defaults to :data:`os.environ`.

    Raises
    ------
    ConfigValidationError
        If the file cannot be read or fails validation.

    """
    data: dict = {}
    if config_file is not None:
        path = Path(config_file)
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as exc:
            msg = f"configuration file not found: {path}"
            raise ConfigValidationError([msg]) from exc
        except (OSError, yaml.YAMLError) as exc:
            msg = f"cannot read configuration file {path}: {exc}"
            raise ConfigValidationError([msg]) from exc
        log.debug("Loaded configuration from %s", path)
    return settings_from_dict(data, env)
