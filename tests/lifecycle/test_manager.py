"""End-to-end tests for milou_ssl.lifecycle.manager with fake collaborators."""

from __future__ import annotations

import stat
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from conftest import FakeAcmeClient, FakePorts, FakeResolver, FakeRunner, make_pair, write_pair
from milou_ssl.collaborators.acme_client import AcmeClientError
from milou_ssl.core.errors import AcquisitionError, PreconditionError, ValidationError
from milou_ssl.core.types import DeployState, IssuerKind, PortOwner, RenewalAction, StrategyName
from milou_ssl.deploy.controller import DeploymentController
from milou_ssl.lifecycle.manager import CertificateManager
from milou_ssl.models.location import WorkingContext


def _build(
    settings,
    crypto,
    tmp_path,
    *,
    runner=None,
    client=None,
    owner=PortOwner.FREE,
    deploy=True,
):
    runner = runner or FakeRunner()
    manager = CertificateManager(
        settings,
        crypto=crypto,
        context=WorkingContext(cwd=tmp_path),
        runner=runner,
        resolver=FakeResolver(public=True),
        acme_client=client or FakeAcmeClient(),
        ports=FakePorts(owner),
        is_root=lambda: True,
    )
    if deploy:
        manager.deployer = DeploymentController(runner, settings.proxy, manager.backups)
    return manager, runner


def _with_domain_key_size(settings, bits):
    self_signed = replace(settings.certificates.self_signed, domain_key_size=bits)
    return replace(settings, certificates=replace(settings.certificates, self_signed=self_signed))


def _mtimes(location):
    return location.cert_path.stat().st_mtime_ns, location.key_path.stat().st_mtime_ns


class _FlakyStartRunner(FakeRunner):
    """Fails the first start, then behaves."""

    def start(self, name: str) -> None:
        self.fail_start = self.count("start") == 0
        super().start(name)


# ---------------------------------------------------------------------------
# ensure
# ---------------------------------------------------------------------------


class TestEnsure:
    def test_localhost_from_scratch(self, settings, crypto, tmp_path):
        manager, runner = _build(settings, crypto, tmp_path)

        result = manager.ensure("localhost", "./ssl")

        location = manager.resolve("./ssl")
        assert result.changed is True
        assert result.strategy is StrategyName.SELF_SIGNED
        assert result.deploy_state is DeployState.RELOADED
        assert stat.S_IMODE(location.cert_path.stat().st_mode) == 0o644
        assert stat.S_IMODE(location.key_path.stat().st_mode) == 0o600
        material = result.material
        assert material.key_size == 2048
        assert 364 <= (material.not_after - material.not_before).days <= 365
        assert runner.files["/etc/ssl/milou.crt"] == location.cert_path.read_bytes()

    def test_second_ensure_is_noop(self, settings, crypto, tmp_path):
        manager, runner = _build(settings, crypto, tmp_path)
        manager.ensure("localhost", "./ssl")
        location = manager.resolve("./ssl")
        before = _mtimes(location)
        calls = len(runner.calls)

        result = manager.ensure("localhost", "./ssl")

        assert result.changed is False
        assert _mtimes(location) == before
        assert len(runner.calls) == calls
        assert manager.list_backups("./ssl") == []

    def test_acme_failure_with_proxy_on_port_80_falls_back(self, settings, crypto, tmp_path):
        settings = _with_domain_key_size(settings, 4096)
        client = FakeAcmeClient(error=AcmeClientError("Challenge failed for domain example.com"))
        manager, runner = _build(settings, crypto, tmp_path, client=client, owner=PortOwner.PROXY)

        result = manager.ensure("example.com", "./ssl")

        assert client.calls == [("example.com", "ops@example.com")]
        assert runner.count("stop") == 1
        assert runner.count("start") == 1
        assert runner.running is True
        assert result.fell_back is True
        assert result.strategy is StrategyName.SELF_SIGNED
        assert result.material.key_size == 4096
        assert result.material.issuer_kind is IssuerKind.SELF_SIGNED
        assert result.deploy_state is DeployState.RELOADED

    def test_acme_failure_and_failed_restart_still_fall_back(self, settings, crypto, tmp_path):
        client = FakeAcmeClient(error=AcmeClientError("Challenge failed for domain example.com"))
        runner = _FlakyStartRunner()
        manager, _ = _build(settings, crypto, tmp_path, runner=runner, client=client, owner=PortOwner.PROXY)

        result = manager.ensure("example.com", "./ssl")

        location = manager.resolve("./ssl")
        assert location.has_material()
        assert result.fell_back is True
        assert result.strategy is StrategyName.SELF_SIGNED
        assert runner.count("stop") == 1
        assert runner.count("start") == 2
        assert runner.running is True
        assert result.deploy_state is DeployState.RELOADED

    def test_acme_success(self, settings, crypto, tmp_path):
        manager, runner = _build(settings, crypto, tmp_path, owner=PortOwner.PROXY)

        result = manager.ensure("example.com", "./ssl")

        assert result.strategy is StrategyName.ACME
        assert result.material.issuer_kind is IssuerKind.ACME
        assert result.fell_back is False
        assert runner.count("start") == 1

    def test_explicit_acme_without_root_is_precondition(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path)
        manager.engine._ctx.is_root = lambda: False

        with pytest.raises(PreconditionError):
            manager.ensure("example.com", "./ssl", StrategyName.ACME)
        assert not manager.resolve("./ssl").has_material()

    def test_domain_mismatch_reacquires_and_backs_up(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        location = manager.resolve("./ssl")
        write_pair(location.directory, *make_pair("other.local"))

        result = manager.ensure("localhost", "./ssl")

        assert result.changed is True
        assert result.backup is not None
        assert result.backup.subject == "CN=other.local"
        assert result.deploy_state is None

    def test_import(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        cert_path, key_path = write_pair(
            tmp_path / "incoming",
            *make_pair("example.com", issuer_cn="Corp CA"),
            name="corp",
        )

        result = manager.ensure(
            "example.com",
            "./ssl",
            StrategyName.IMPORT,
            import_cert=cert_path,
            import_key=key_path,
        )

        assert result.strategy is StrategyName.IMPORT
        assert manager.resolve("./ssl").cert_path.read_bytes() == cert_path.read_bytes()

    def test_project_root_redirects_to_mount(self, settings, crypto, tmp_path):
        root = tmp_path / "milou-cli"
        (root / "static").mkdir(parents=True)
        manager, _ = _build(settings, crypto, root, deploy=False)

        manager.ensure("localhost", "./certs")

        assert (root / "static" / "ssl" / "milou.crt").is_file()


# ---------------------------------------------------------------------------
# renew_if_needed
# ---------------------------------------------------------------------------


class TestRenewal:
    def test_not_needed(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path)
        manager.ensure("localhost", "./ssl")

        result = manager.renew_if_needed("./ssl", "localhost")

        assert result.changed is False
        assert result.decision.action is RenewalAction.NOT_NEEDED

    def test_needed_soon_renews_with_backup(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path)
        location = manager.resolve("./ssl")
        write_pair(location.directory, *make_pair("example.com", days=10))
        old_not_after = manager.load_material(location, "example.com").not_after

        decision = manager.check_renewal("./ssl", "example.com")
        result = manager.renew_if_needed("./ssl", "example.com")

        assert decision.action is RenewalAction.NEEDED_SOON
        assert result.changed is True
        assert result.strategy is StrategyName.SELF_SIGNED
        assert result.backup is not None
        assert result.material.not_after > old_not_after
        assert result.deploy_state is DeployState.RELOADED
        assert manager.validate("./ssl", "example.com").ok

    def test_failed_acme_renewal_keeps_old_certificate(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path)
        location = manager.resolve("./ssl")
        issued = FakeAcmeClient(days=10).issue_standalone_http01("example.com", "ops@example.com")
        write_pair(location.directory, issued.fullchain_pem, issued.private_key_pem)
        before = location.cert_path.read_bytes()
        manager.engine._ctx.acme_client = FakeAcmeClient(error=AcmeClientError("rate limited", retryable=True))

        with pytest.raises(AcquisitionError) as exc_info:
            manager.renew_if_needed("./ssl", "example.com")

        assert exc_info.value.retryable is True
        assert location.cert_path.read_bytes() == before
        assert manager.validate("./ssl", "example.com").ok
        assert manager.list_backups("./ssl") == []

    def test_expired_certificate_may_fall_back(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        location = manager.resolve("./ssl")
        issued = make_pair(
            "example.com",
            days=-1,
            not_before=datetime.now(UTC) - timedelta(days=90),
            issuer_cn="R3",
            issuer_org="Let's Encrypt",
        )
        write_pair(location.directory, *issued)
        manager.engine._ctx.acme_client = FakeAcmeClient(error=AcmeClientError("dns problem"))

        result = manager.renew_if_needed("./ssl", "example.com")

        assert result.decision.action is RenewalAction.NEEDED_NOW
        assert result.fell_back is True
        assert result.material.issuer_kind is IssuerKind.SELF_SIGNED

    def test_missing_certificate_is_acquired(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)

        result = manager.renew_if_needed("./ssl", "localhost")

        assert result.decision.action is RenewalAction.UNKNOWN
        assert result.changed is True

    def test_force(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        manager.ensure("localhost", "./ssl")

        result = manager.renew_if_needed("./ssl", "localhost", force=True)

        assert result.changed is True
        assert result.backup is not None


# ---------------------------------------------------------------------------
# deploy / backup / restore / migrate / status
# ---------------------------------------------------------------------------


class TestOtherOperations:
    def test_deploy_without_proxy(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        with pytest.raises(PreconditionError, match="no reverse proxy"):
            manager.deploy("./ssl", "localhost")

    def test_deploy(self, settings, crypto, tmp_path):
        manager, runner = _build(settings, crypto, tmp_path)
        write_pair(manager.resolve("./ssl").directory, *make_pair("localhost"))
        assert manager.deploy("./ssl", "localhost") is DeployState.RELOADED
        assert "/etc/ssl/milou.key" in runner.files

    def test_backup_and_restore_by_name(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        location = manager.resolve("./ssl")
        write_pair(location.directory, *make_pair("localhost"))
        original = location.cert_path.read_bytes()
        record = manager.backup("./ssl", reason="before experiment")
        write_pair(location.directory, *make_pair("other.local"))

        restored = manager.restore("./ssl", record.cert_path.stem)

        assert restored.cert_path == record.cert_path
        assert location.cert_path.read_bytes() == original

    def test_restore_without_backups(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        with pytest.raises(ValidationError, match="no matching backup"):
            manager.restore("./ssl")

    def test_prune(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        write_pair(manager.resolve("./ssl").directory, *make_pair("localhost"))
        for _ in range(3):
            manager.backup("./ssl")
        assert manager.prune("./ssl", keep=1) == 2
        assert len(manager.list_backups("./ssl")) == 1

    def test_migrate(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path, deploy=False)
        write_pair(tmp_path / "certs", *make_pair("localhost"))

        source = manager.migrate("./ssl")

        assert source is not None
        assert source.directory == tmp_path / "certs"
        assert manager.resolve("./ssl").has_material()
        assert manager.migrate("./ssl") is None

    def test_status(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path)
        manager.ensure("localhost", "./ssl")

        info = manager.status("./ssl", "localhost")

        assert info["valid"] is True
        assert info["renewal"] == "not-needed"
        assert info["proxy_running"] is True
        assert info["details"]["key"] == "RSA 2048"
        assert info["details"]["issuer_kind"] == "self-signed"

    def test_status_without_certificate(self, settings, crypto, tmp_path):
        manager, _ = _build(settings, crypto, tmp_path)
        info = manager.status("./ssl", "localhost")
        assert info["valid"] is False
        assert info["renewal"] == "unknown"
        assert "details" not in info
