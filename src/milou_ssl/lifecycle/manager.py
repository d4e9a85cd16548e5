"""Certificate Manager -- the operations the CLI exposes.

Ties the Path Resolver, Validator, Acquisition Engine, Backup Manager
and Deployment Controller together under a per-location lock:

* :meth:`CertificateManager.ensure` -- valid certificate for a domain,
  acquiring one only when needed.
* :meth:`CertificateManager.renew_if_needed` -- proactive renewal.
* :meth:`CertificateManager.deploy`, :meth:`backup`, :meth:`restore`,
  :meth:`validate`, :meth:`status`, :meth:`migrate`.

Usage::

    manager = CertificateManager.from_settings(settings)
    result = manager.ensure("example.com", "./ssl")
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from milou_ssl.acquisition.base import StrategyContext
from milou_ssl.acquisition.engine import AcquisitionEngine
from milou_ssl.acquisition.ports import PortInspector
from milou_ssl.collaborators.process import ProcessRunnerError
from milou_ssl.core.errors import AcquisitionError, PreconditionError, ValidationError
from milou_ssl.core.types import RenewalAction, StrategyName
from milou_ssl.crypto.provider import CryptographyProvider
from milou_ssl.lifecycle.locks import LocationLocks
from milou_ssl.lifecycle.renewal import decide, strategy_for
from milou_ssl.logging.setup import log_success, operation_context
from milou_ssl.models.location import WorkingContext
from milou_ssl.models.request import AcquisitionRequest
from milou_ssl.models.results import OperationResult, RenewalDecision
from milou_ssl.storage.backup import BackupManager
from milou_ssl.storage.paths import PathResolver, consolidate
from milou_ssl.validation.validator import Validator

if TYPE_CHECKING:
    from milou_ssl.collaborators.acme_client import AcmeClient
    from milou_ssl.collaborators.process import ProcessRunner
    from milou_ssl.collaborators.resolver import DomainResolver
    from milou_ssl.config.settings import MilouSettings
    from milou_ssl.core.cancellation import CancellationToken
    from milou_ssl.core.types import DeployState
    from milou_ssl.crypto.provider import CryptoProvider
    from milou_ssl.deploy.controller import DeploymentController
    from milou_ssl.models.backup import BackupRecord
    from milou_ssl.models.location import CertificateLocation
    from milou_ssl.models.material import CertificateMaterial
    from milou_ssl.models.results import ValidationResult

log = logging.getLogger(__name__)


class CertificateManager:
    """Orchestrate the certificate lifecycle for one deployment.

    Use :meth:`from_settings` to wire the real collaborators; tests
    construct it directly with fakes.
    """

    def __init__(
        self,
        settings: MilouSettings,
        *,
        crypto: CryptoProvider,
        context: WorkingContext,
        runner: ProcessRunner | None = None,
        resolver: DomainResolver | None = None,
        acme_client: AcmeClient | None = None,
        deployer: DeploymentController | None = None,
        ports: PortInspector | None = None,
        confirm: Callable[[str], bool] | None = None,
        is_root: Callable[[], bool] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.crypto = crypto
        self.context = context
        self._clock = clock or (lambda: datetime.now(UTC))
        certs = settings.certificates

        self.paths = PathResolver(certs.name)
        self.validator = Validator(
            crypto,
            warning_days=certs.warning_days,
            strict_domain_match=certs.strict_domain_match,
            clock=self._clock,
        )
        self.backups = BackupManager(crypto, clock=self._clock)
        self.locks = LocationLocks(certs.lock_timeout_seconds)
        self.runner = runner
        self.deployer = deployer

        strategy_ctx = StrategyContext(
            settings=settings,
            crypto=crypto,
            validator=self.validator,
            runner=runner,
            resolver=resolver,
            acme_client=acme_client,
            ports=ports or PortInspector(runner, settings.proxy.container),
        )
        if is_root is not None:
            strategy_ctx.is_root = is_root
        self.engine = AcquisitionEngine(strategy_ctx, self.backups, confirm=confirm)

    @classmethod
    def from_settings(
        cls,
        settings: MilouSettings,
        *,
        context: WorkingContext | None = None,
        confirm: Callable[[str], bool] | None = None,
    ) -> CertificateManager:
        """Build a manager wired to Docker, dnspython and certbot."""
        from milou_ssl.collaborators.acme_client import CertbotAcmeClient
        from milou_ssl.collaborators.docker_runner import DockerProcessRunner
        from milou_ssl.collaborators.resolver import DnsResolver
        from milou_ssl.deploy.controller import DeploymentController
        from milou_ssl.deploy.probe import HttpsProbe

        crypto = CryptographyProvider(settings.acme.issuer_patterns)
        runner = None
        if settings.proxy.enabled:
            runner = DockerProcessRunner(
                settings.proxy.docker_base_url,
                start_timeout=settings.proxy.start_timeout_seconds,
            )
        context = context or WorkingContext.current(
            project_dir_name=settings.workspace.project_dir_name,
            deploy_subdir=settings.workspace.deploy_subdir,
        )
        manager = cls(
            settings,
            crypto=crypto,
            context=context,
            runner=runner,
            resolver=DnsResolver(settings.dns.resolvers, settings.dns.timeout_seconds),
            acme_client=CertbotAcmeClient(
                settings.acme.certbot_path,
                settings.acme.config_dir,
                staging=settings.acme.staging,
                http_port=settings.acme.http_port,
            ),
            confirm=confirm,
        )
        if runner is not None:
            manager.deployer = DeploymentController(
                runner,
                settings.proxy,
                manager.backups,
                probe=HttpsProbe(settings.proxy.probe_timeout_seconds),
            )
        return manager

    # -- helpers --------------------------------------------------------------

    def resolve(self, path: str | Path | None = None) -> CertificateLocation:
        return self.paths.resolve(path or self.settings.certificates.path, self.context)

    def load_material(self, location: CertificateLocation, domain: str) -> CertificateMaterial | None:
        """Parse the stored pair without validating it; ``None`` if unusable."""
        if not location.has_material():
            return None
        try:
            return self.crypto.build_material(
                location.cert_path.read_bytes(),
                location.key_path.read_bytes(),
                domain,
            )
        except (OSError, ValidationError) as exc:
            log.warning("Cannot read certificate at %s: %s", location.directory, exc)
            return None

    def _deploy_if_possible(self, location: CertificateLocation, domain: str, *, deploy: bool) -> DeployState | None:
        if not deploy or self.deployer is None:
            return None
        return self.deployer.deploy(location, domain)

    # -- operations -----------------------------------------------------------

    def ensure(
        self,
        domain: str,
        path: str | Path | None = None,
        strategy: StrategyName | str = StrategyName.AUTO,
        *,
        deploy: bool = True,
        email: str | None = None,
        import_cert: Path | None = None,
        import_key: Path | None = None,
        token: CancellationToken | None = None,
    ) -> OperationResult:
        """Make sure a valid certificate for *domain* exists (and is live).

        Existing material that is valid and covers *domain* is kept
        untouched.  Otherwise a certificate is acquired, validated,
        installed (backing up what it replaces) and deployed.

        Raises
        ------
        PathError, PreconditionError
            Environment problems; nothing was changed.
        AcquisitionError, ValidationError, DeploymentError
            The operation failed; previous material is still in place.

        """
        location = self.resolve(path)
        with operation_context("ensure", domain), self.locks.hold(location.directory):
            if strategy != StrategyName.IMPORT:
                current = self.validator.validate(location, domain)
                if current.usable_for_domain:
                    self.paths.ensure_container_visible(location, self.context)
                    log.info("Existing certificate for %s is valid (%s days left)", domain, current.days_until_expiry)
                    return OperationResult(
                        material=current.material,
                        changed=False,
                        warnings=current.warnings,
                    )
                if current.ok:
                    log.warning("Existing certificate does not cover %s; acquiring a new one", domain)
                elif location.has_material():
                    log.warning("Existing certificate is unusable (%s); acquiring a new one", current.reason)

            request = AcquisitionRequest(
                domain=domain,
                strategy=StrategyName(strategy) if not str(strategy).startswith("ext:") else strategy,
                email=email or self.settings.acme.email,
                import_cert=import_cert,
                import_key=import_key,
                token=token,
            )
            material, used, fell_back = self.engine.acquire(request)
            record = self.engine.install(material, location, reason=f"replaced by {used}")
            visible = self.paths.ensure_container_visible(location, self.context)
            state = self._deploy_if_possible(visible, domain, deploy=deploy)
            if fell_back:
                log.warning("Serving a self-signed certificate for %s; browsers will not trust it", domain)
            log_success(log, "Certificate for %s ready (%s)", domain, used)
            return OperationResult(
                material=material,
                changed=True,
                strategy=used,
                fell_back=fell_back,
                backup=record,
                deploy_state=state,
            )

    def validate(self, path: str | Path | None, domain: str) -> ValidationResult:
        location = self.resolve(path)
        with operation_context("validate", domain):
            result = self.validator.validate(location, domain)
            if result.ok:
                log_success(log, "Certificate at %s is valid for %s", location.directory, domain)
            else:
                log.error("Certificate at %s is invalid: %s", location.directory, result.reason)
            return result

    def check_renewal(self, path: str | Path | None, domain: str) -> RenewalDecision:
        """Renewal decision for the stored certificate, without acting on it."""
        location = self.resolve(path)
        return self._decide(location, domain)[0]

    def _decide(self, location: CertificateLocation, domain: str) -> tuple[RenewalDecision, CertificateMaterial | None]:
        material = self.load_material(location, domain)
        decision = decide(material, now=self._clock(), threshold_days=self.settings.renewal.threshold_days)
        if material is not None and decision.action is RenewalAction.NOT_NEEDED:
            current = self.validator.validate(location, domain)
            if not current.ok:
                decision = RenewalDecision(
                    RenewalAction.NEEDED_NOW,
                    days_remaining=decision.days_remaining,
                    reason=current.reason,
                )
        return decision, material

    def renew_if_needed(
        self,
        path: str | Path | None,
        domain: str,
        *,
        strategy: StrategyName | str | None = None,
        force: bool = False,
        deploy: bool | None = None,
        token: CancellationToken | None = None,
    ) -> OperationResult:
        """Renew the stored certificate when its decision says so.

        The current certificate stays in place until a replacement has
        been obtained and validated.

        Raises
        ------
        AcquisitionError, ValidationError, PreconditionError
            Renewal failed; the previous certificate is untouched.

        """
        location = self.resolve(path)
        deploy = self.settings.renewal.deploy if deploy is None else deploy
        with operation_context("renew", domain), self.locks.hold(location.directory):
            decision, current = self._decide(location, domain)
            if decision.action is RenewalAction.NOT_NEEDED and not force:
                log.info("Renewal not needed for %s (%s days left)", domain, decision.days_remaining)
                return OperationResult(material=current, changed=False, decision=decision)
            if decision.action is RenewalAction.UNKNOWN:
                log.warning("No usable certificate for %s (%s); acquiring one", domain, decision.reason)
            else:
                log.info("Renewing certificate for %s (%s)", domain, decision.action)

            chosen = strategy or strategy_for(current)
            # Only replace a still-valid certificate with one of the same kind.
            unusable = current is None or decision.action is RenewalAction.NEEDED_NOW
            request = AcquisitionRequest(
                domain=domain,
                strategy=chosen,
                email=self.settings.acme.email,
                token=token,
            )
            try:
                material, used, fell_back = self.engine.acquire(request, allow_fallback=unusable)
                record = self.engine.install(material, location, reason=f"renewal ({decision.action})")
            except (AcquisitionError, ValidationError) as exc:
                log.error("Renewal for %s failed, keeping the current certificate: %s", domain, exc)
                raise
            visible = self.paths.ensure_container_visible(location, self.context)
            state = self._deploy_if_possible(visible, domain, deploy=deploy)
            log_success(log, "Renewed certificate for %s (valid until %s)", domain, material.not_after.date())
            return OperationResult(
                material=material,
                changed=True,
                strategy=used,
                fell_back=fell_back,
                backup=record,
                decision=decision,
                deploy_state=state,
            )

    def deploy(self, path: str | Path | None, domain: str) -> DeployState:
        if self.deployer is None:
            msg = "no reverse proxy is configured for deployment (proxy.enabled is false)"
            raise PreconditionError(msg)
        location = self.resolve(path)
        with operation_context("deploy", domain), self.locks.hold(location.directory):
            return self.deployer.deploy(location, domain)

    def backup(self, path: str | Path | None = None, reason: str = "manual") -> BackupRecord:
        location = self.resolve(path)
        with operation_context("backup"), self.locks.hold(location.directory):
            return self.backups.backup(location, reason)

    def list_backups(self, path: str | Path | None = None) -> list[BackupRecord]:
        return self.backups.list_backups(self.resolve(path))

    def restore(self, path: str | Path | None = None, name: str | None = None) -> BackupRecord:
        """Restore the newest backup, or the one whose file stem is *name*.

        Returns the record that was restored.
        """
        location = self.resolve(path)
        with operation_context("restore"), self.locks.hold(location.directory):
            records = self.backups.list_backups(location)
            if name:
                records = [r for r in records if r.cert_path.stem == name or r.cert_path.name == name]
            if not records:
                msg = f"no matching backup found in {location.backup_dir}"
                raise ValidationError(msg)
            self.backups.restore(records[0], location)
            return records[0]

    def prune(self, path: str | Path | None = None, keep: int = 10) -> int:
        location = self.resolve(path)
        with operation_context("prune"), self.locks.hold(location.directory):
            return self.backups.prune(location, keep)

    def migrate(self, path: str | Path | None = None) -> CertificateLocation | None:
        """Copy a certificate pair found in a common directory into *path*.

        Returns the source location, or ``None`` when nothing was moved.
        """
        location = self.resolve(path)
        with operation_context("migrate"), self.locks.hold(location.directory):
            if location.has_material():
                log.info("%s already holds a certificate pair", location.directory)
                return None
            source = self.paths.find_existing(self.context)
            if source is None or not consolidate(source, location):
                log.info("No certificates found to migrate")
                return None
            self.paths.ensure_container_visible(location, self.context)
            return source

    def status(self, path: str | Path | None, domain: str) -> dict[str, Any]:
        """Everything worth knowing about the stored certificate."""
        location = self.resolve(path)
        result = self.validator.validate(location, domain)
        material = result.material or self.load_material(location, domain)
        decision, _ = self._decide(location, domain)
        info: dict[str, Any] = {
            "location": str(location.directory),
            "certificate": str(location.cert_path),
            "key": str(location.key_path),
            "container_visible": location.docker_mount_compatible,
            "valid": result.ok,
            "reason": result.reason,
            "warnings": list(result.warnings),
            "domain_matches": result.domain_matches,
            "renewal": decision.action.value,
            "backups": len(self.backups.list_backups(location)),
        }
        if material is not None:
            info["details"] = self.crypto.describe(material, now=self._clock())
        if self.runner is not None:
            try:
                info["proxy_running"] = self.runner.is_running(self.settings.proxy.container)
            except ProcessRunnerError as exc:
                log.debug("Cannot query proxy state: %s", exc)
                info["proxy_running"] = None
        info["security_warnings"] = self.paths.check_security(location)
        return info
