"""Configuration subsystem.

Public API::

    from milou_ssl.config import load_settings

    settings = load_settings("milou-ssl.yaml")
    settings.renewal.threshold_days   # typed access
"""

from milou_ssl.config.loader import (
    ConfigValidationError,
    load_settings,
    settings_from_dict,
)
from milou_ssl.config.settings import (
    AcmeSettings,
    CertificateSettings,
    DnsSettings,
    LoggingSettings,
    MilouSettings,
    ProxySettings,
    RenewalSettings,
    SelfSignedSettings,
    WorkspaceSettings,
    build_settings,
)

__all__ = [
    "AcmeSettings",
    "CertificateSettings",
    "ConfigValidationError",
    "DnsSettings",
    "LoggingSettings",
    "MilouSettings",
    "ProxySettings",
    "RenewalSettings",
    "SelfSignedSettings",
    "WorkspaceSettings",
    "build_settings",
    "load_settings",
    "settings_from_dict",
]
