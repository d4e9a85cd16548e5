"""Deployment Controller -- push certificate material into the proxy.

Walks the deployment state machine::

    not-running -> starting -> running -> config-validating
        -> reloaded      (syntax check passed, reload or restart done)
        -> rolled-back   (syntax check failed, previous files restored)

The runtime's current certificate and key are backed up before they
are overwritten.  A failed syntax check never reloads the proxy, so the
previous configuration keeps serving.  A failed graceful reload
escalates to a full restart.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from milou_ssl.collaborators.process import ProcessRunnerError
from milou_ssl.core.errors import DeploymentError, ValidationError
from milou_ssl.core.state import DEPLOY_TRANSITIONS, assert_transition, log_transition
from milou_ssl.core.types import DeployStage, DeployState
from milou_ssl.logging.setup import log_success
from milou_ssl.storage.files import CERT_MODE, KEY_MODE

if TYPE_CHECKING:
    from milou_ssl.collaborators.process import ProcessRunner
    from milou_ssl.config.settings import ProxySettings
    from milou_ssl.deploy.probe import HttpsProbe
    from milou_ssl.models.backup import BackupRecord
    from milou_ssl.models.location import CertificateLocation
    from milou_ssl.storage.backup import BackupManager

log = logging.getLogger(__name__)


class DeploymentController:
    """Deploy a stored certificate pair into the proxy container.

    Parameters
    ----------
    runner:
        Controls the proxy container.
    settings:
        The ``proxy`` configuration section.
    backups:
        Stores the runtime's previous material before it is replaced.
    probe:
        Optional post-deployment HTTPS probe.

    """

    def __init__(
        self,
        runner: ProcessRunner,
        settings: ProxySettings,
        backups: BackupManager,
        probe: HttpsProbe | None = None,
    ) -> None:
        self._runner = runner
        self._settings = settings
        self._backups = backups
        self._probe = probe
        self.state: DeployState | None = None
        self.runtime_backup: BackupRecord | None = None

    def deploy(self, location: CertificateLocation, domain: str) -> DeployState:
        """Deploy the pair at *location* and return the final state.

        Raises
        ------
        ValidationError
            If *location* holds no certificate pair.
        DeploymentError
            On any deployment failure; ``recoverable`` is ``True`` when
            the syntax check failed and the previous files were restored.

        """
        if not location.has_material():
            msg = f"no certificate pair to deploy in {location.directory}"
            raise ValidationError(msg)
        cert_pem = location.cert_path.read_bytes()
        key_pem = location.key_path.read_bytes()
        container = self._settings.container
        self.runtime_backup = None

        self.state = DeployState.RUNNING if self._runner.is_running(container) else DeployState.NOT_RUNNING
        if self.state is DeployState.NOT_RUNNING:
            self._transition(DeployState.STARTING)
            try:
                self._runner.start(container)
            except ProcessRunnerError as exc:
                raise DeploymentError(DeployStage.START, exc.detail) from exc
            self._transition(DeployState.RUNNING)

        previous = self._backup_runtime(location, container)

        try:
            self._runner.copy_into(container, cert_pem, self._settings.cert_path, CERT_MODE)
            self._runner.copy_into(container, key_pem, self._settings.key_path, KEY_MODE)
        except ProcessRunnerError as exc:
            raise DeploymentError(DeployStage.COPY, exc.detail) from exc

        self._transition(DeployState.CONFIG_VALIDATING)
        try:
            check = self._runner.exec(container, self._settings.syntax_check_command)
        except ProcessRunnerError as exc:
            self._rollback(container, previous)
            self._transition(DeployState.ROLLED_BACK, reason="syntax check could not run")
            raise DeploymentError(DeployStage.SYNTAX_CHECK, exc.detail) from exc
        if not check.ok:
            self._rollback(container, previous)
            self._transition(DeployState.ROLLED_BACK, reason="syntax check failed")
            raise DeploymentError(DeployStage.SYNTAX_CHECK, check.output.strip() or f"exit code {check.exit_code}")

        self._reload(container)
        self._transition(DeployState.RELOADED)
        log_success(log, "Certificate deployed to %s", container)

        if self._settings.probe_enabled and self._probe is not None and not self._probe.check(domain):
            log.warning("HTTPS probe for %s failed after deployment", domain)
        return self.state

    # -- steps ----------------------------------------------------------------

    def _backup_runtime(self, location: CertificateLocation, container: str) -> tuple[bytes, bytes] | None:
        try:
            cert = self._runner.copy_from(container, self._settings.cert_path)
            key = self._runner.copy_from(container, self._settings.key_path)
        except ProcessRunnerError as exc:
            raise DeploymentError(DeployStage.BACKUP, exc.detail) from exc
        if cert is None or key is None:
            log.debug("No existing certificate inside %s to back up", container)
            return None
        self.runtime_backup = self._backups.backup_material(location, cert, key, reason=f"pre-deploy {container}")
        return cert, key

    def _rollback(self, container: str, previous: tuple[bytes, bytes] | None) -> None:
        if previous is None:
            log.warning("Syntax check failed and %s had no previous certificate to restore", container)
            return
        cert, key = previous
        try:
            self._runner.copy_into(container, cert, self._settings.cert_path, CERT_MODE)
            self._runner.copy_into(container, key, self._settings.key_path, KEY_MODE)
        except ProcessRunnerError as exc:
            raise DeploymentError(DeployStage.SYNTAX_CHECK, f"rollback failed: {exc.detail}") from exc
        log.warning("Restored previous certificate inside %s", container)

    def _reload(self, container: str) -> None:
        try:
            result = self._runner.exec(container, self._settings.reload_command)
            reloaded = result.ok
            detail = result.output.strip()
        except ProcessRunnerError as exc:
            reloaded = False
            detail = exc.detail
        if reloaded:
            log.info("Reloaded %s", container)
            return
        log.warning("Graceful reload of %s failed (%s); restarting", container, detail or "no output")
        try:
            self._runner.restart(container)
        except ProcessRunnerError as exc:
            raise DeploymentError(DeployStage.RESTART, exc.detail) from exc

    def _transition(self, target: DeployState, *, reason: str | None = None) -> None:
        assert_transition(self.state, target, DEPLOY_TRANSITIONS)
        log_transition("deployment", self._settings.container, self.state, target, reason=reason)
        self.state = target
