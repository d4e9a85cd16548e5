"""Root conftest for the milou-ssl test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

from milou_ssl.collaborators.acme_client import AcmeClient, AcmeClientError, IssuedPair  # noqa: E402
from milou_ssl.collaborators.process import ExecResult, ProcessRunner  # noqa: E402
from milou_ssl.collaborators.resolver import DomainResolver  # noqa: E402

# ---------------------------------------------------------------------------
# Certificate material helpers
# ---------------------------------------------------------------------------

_KEY_CACHE: dict[int, rsa.RSAPrivateKey] = {}


def generate_key(key_size: int = 2048, *, fresh: bool = False) -> rsa.RSAPrivateKey:
    """Return an RSA key; cached per size unless *fresh*."""
    if fresh or key_size not in _KEY_CACHE:
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        if fresh:
            return key
        _KEY_CACHE[key_size] = key
    return _KEY_CACHE[key_size]


def key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


def make_pair(
    domain: str = "example.com",
    *,
    san: tuple[str, ...] | None = None,
    days: int = 90,
    not_before: datetime | None = None,
    issuer_cn: str | None = None,
    issuer_org: str | None = None,
    key=None,
    signing_key=None,
) -> tuple[bytes, bytes]:
    """Build a ``(cert_pem, key_pem)`` pair.

    With *issuer_cn* the certificate is signed by a separate key under
    that issuer name (CA-issued); otherwise it is self-signed.
    """
    key = key or generate_key()
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    if issuer_cn:
        attrs = []
        if issuer_org:
            attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, issuer_org))
        attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn))
        issuer = x509.Name(attrs)
        signer = signing_key or generate_key(3072)
    else:
        issuer = subject
        signer = key
    start = not_before or datetime.now(UTC) - timedelta(days=1)
    names = san if san is not None else (domain,)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(start)
        .not_valid_after(datetime.now(UTC) + timedelta(days=days))
    )
    if names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in names]),
            critical=False,
        )
    cert = builder.sign(signer, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM), key_pem(key)


def write_pair(directory: Path, cert_pem: bytes, key_bytes: bytes, name: str = "milou") -> tuple[Path, Path]:
    directory.mkdir(parents=True, exist_ok=True)
    cert_path = directory / f"{name}.crt"
    key_path = directory / f"{name}.key"
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_bytes)
    cert_path.chmod(0o644)
    key_path.chmod(0o600)
    return cert_path, key_path


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeRunner(ProcessRunner):
    """In-memory stand-in for the proxy container."""

    def __init__(self, *, running: bool = True, ports: set[int] | None = None) -> None:
        self.running = running
        self.ports = {80, 443} if ports is None else ports
        self.files: dict[str, bytes] = {}
        self.modes: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.exec_results: dict[tuple[str, ...], ExecResult] = {}
        self.fail_start = False

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def is_running(self, name: str) -> bool:
        return self.running

    def start(self, name: str) -> None:
        from milou_ssl.collaborators.process import ProcessRunnerError

        self.calls.append(("start", name))
        if self.fail_start:
            msg = "cannot start"
            raise ProcessRunnerError(msg)
        self.running = True

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        self.running = False

    def restart(self, name: str) -> None:
        self.calls.append(("restart", name))
        self.running = True

    def exec(self, name: str, argv) -> ExecResult:
        self.calls.append(("exec", name, tuple(argv)))
        return self.exec_results.get(tuple(argv), ExecResult(0, ""))

    def copy_into(self, name: str, data: bytes, dest_path: str, mode: int) -> None:
        self.calls.append(("copy_into", name, dest_path))
        self.files[dest_path] = data
        self.modes[dest_path] = mode

    def copy_from(self, name: str, src_path: str) -> bytes | None:
        self.calls.append(("copy_from", name, src_path))
        return self.files.get(src_path)

    def published_ports(self, name: str) -> set[int]:
        return set(self.ports) if self.running else set()


class FakeResolver(DomainResolver):
    def __init__(self, public: bool = True) -> None:
        self.public = public

    def is_publicly_resolvable(self, domain: str) -> bool:
        return self.public


class FakeAcmeClient(AcmeClient):
    """Issues CA-signed certificates, or fails on demand."""

    def __init__(self, *, error: AcmeClientError | None = None, days: int = 90) -> None:
        self.error = error
        self.days = days
        self.calls: list[tuple[str, str]] = []
        self.on_issue = None

    def issue_standalone_http01(self, domain: str, email: str, *, timeout=None) -> IssuedPair:
        self.calls.append((domain, email))
        if self.on_issue is not None:
            self.on_issue()
        if self.error is not None:
            raise self.error
        cert, key = make_pair(
            domain,
            days=self.days,
            issuer_cn="R3",
            issuer_org="Let's Encrypt",
            key=generate_key(fresh=True),
        )
        return IssuedPair(fullchain_pem=cert, private_key_pem=key)


class FakePorts:
    def __init__(self, owner) -> None:
        self._owner = owner

    def owner(self, port: int):
        return self._owner


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Config data that keeps key generation fast in tests."""
    return {
        "domain": "localhost",
        "certificates": {"self_signed": {"domain_key_size": 2048}},
        "acme": {"email": "ops@example.com"},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "milou-ssl.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def settings(minimal_config_data):
    from milou_ssl.config import settings_from_dict

    return settings_from_dict(minimal_config_data, env={})


@pytest.fixture()
def crypto():
    from milou_ssl.crypto import CryptographyProvider

    return CryptographyProvider()


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()
