"""Backup, stop, replace, start: the deployment sequence for one live directory."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock, Timeout

from terminal_deployer.archive.directory import replace_directory_contents
from terminal_deployer.core.exceptions import (
    ConfigurationError,
    DeployerError,
    DeploymentInProgressError,
    ServiceControlError,
    map_os_error,
)
from terminal_deployer.deploy.backup import create_backup, utc_now
from terminal_deployer.deploy.models import (
    ArtifactReference,
    DeploymentRecord,
    DeploymentStatus,
    DeploymentStep,
)
from terminal_deployer.deploy.resolver import ArtifactResolver
from terminal_deployer.deploy.service_control import ServiceController
from terminal_deployer.utils.logging import StepLogger, bind_deployment_context, unbind_deployment_context


def target_lock_path(target_dir: Path, lock_dir: Path) -> Path:
    """Lock file for a target; lives outside the target so clearing never touches it."""
    digest = hashlib.sha256(str(Path(target_dir).resolve()).encode("utf-8")).hexdigest()[:24]
    return Path(lock_dir) / f".deploy-{digest}.lock"


def _is_within(path: Path, root: Path) -> bool:
    path = Path(path).resolve()
    root = Path(root).resolve()
    return path == root or root in path.parents


class DeploymentSequencer:
    """Runs ``resolve -> backup -> stop_service -> replace -> start_service``.

    Fatal: resolution, backup write and extraction failures. Everything else
    (per-item cleanup, service control trouble) is recorded as a warning on
    the returned DeploymentRecord.

    Only one sequencer may run against a target at a time; a second one
    raises DeploymentInProgressError before touching anything.
    """

    def __init__(
        self,
        target_dir: Path,
        backup_dir: Path,
        resolver: ArtifactResolver,
        service_controller: ServiceController,
        *,
        site_name: str,
        lock_dir: Optional[Path] = None,
        clock: Callable[[], datetime] = utc_now,
        step_logger: Optional[StepLogger] = None,
    ):
        self.target_dir = Path(target_dir)
        self.backup_dir = Path(backup_dir)
        self.resolver = resolver
        self.service_controller = service_controller
        self.site_name = site_name
        self.lock_dir = Path(lock_dir) if lock_dir else self.backup_dir
        self.clock = clock
        self.log = step_logger or StepLogger()

    def run(self) -> DeploymentRecord:
        self._check_layout()
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(target_lock_path(self.target_dir, self.lock_dir)))
        try:
            lock.acquire(timeout=0)
        except Timeout as e:
            raise DeploymentInProgressError(
                f"A deployment to '{self.target_dir}' is already in progress", code="DEPLOYMENT_IN_PROGRESS"
            ) from e
        try:
            return self._run_locked()
        finally:
            unbind_deployment_context()
            lock.release()

    def _check_layout(self) -> None:
        # Replace clears the whole target; snapshots and the lock must live elsewhere
        for name, path in (("backup_dir", self.backup_dir), ("lock_dir", self.lock_dir)):
            if _is_within(path, self.target_dir):
                raise ConfigurationError(
                    f"{name} '{path}' must not be inside the target directory '{self.target_dir}'",
                    code="BACKUP_INSIDE_TARGET",
                )

    def _run_locked(self) -> DeploymentRecord:
        record = DeploymentRecord(
            deploymentId=uuid.uuid4().hex[:12],
            target_dir=str(self.target_dir),
            site_name=self.site_name,
        )
        bind_deployment_context(record.deploymentId, self.site_name)

        record.enter(DeploymentStep.RESOLVE)
        self.log.step("Resolve package zip")
        try:
            reference = self.resolver.resolve()
        except DeployerError as e:
            self._fail(record, DeploymentStep.RESOLVE, e)
            return record
        record.artifact = reference
        record.complete(DeploymentStep.RESOLVE)

        try:
            self._deploy(record, reference)
        finally:
            reference.release()

        record.finish()
        if record.succeeded:
            self.log.ok("Deployment complete", warnings=len(record.warnings))
        return record

    def _deploy(self, record: DeploymentRecord, reference: ArtifactReference) -> None:
        if not self._backup(record):
            return

        self._control_service(record, DeploymentStep.STOP_SERVICE)
        try:
            self._replace(record, reference)
        finally:
            # Restart even after a failed replace to keep downtime short
            self._control_service(record, DeploymentStep.START_SERVICE)

    def _backup(self, record: DeploymentRecord) -> bool:
        record.enter(DeploymentStep.BACKUP)
        self.log.step("Backup current site")
        if not self.target_dir.is_dir():
            try:
                self.target_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                self._fail(record, DeploymentStep.BACKUP, map_os_error(e, "Failed to create target directory"))
                return False
            record.backup_skipped = True
            message = "Target directory did not exist; created it. Skipping backup."
            record.warn(DeploymentStep.BACKUP, message, path=str(self.target_dir))
            self.log.warn(message, target=str(self.target_dir))
            record.complete(DeploymentStep.BACKUP)
            return True

        self.log.info("Zipping target directory", target=str(self.target_dir), backup_dir=str(self.backup_dir))
        try:
            backup_path = create_backup(self.target_dir, self.backup_dir, self.clock)
        except DeployerError as e:
            self._fail(record, DeploymentStep.BACKUP, e)
            return False
        record.backup_path = str(backup_path)
        self.log.ok("Backup saved", path=str(backup_path))
        record.complete(DeploymentStep.BACKUP)
        return True

    def _control_service(self, record: DeploymentRecord, step: DeploymentStep) -> None:
        if record.status != DeploymentStatus.FAILED:
            record.enter(step)
        action = "stop" if step == DeploymentStep.STOP_SERVICE else "start"
        self.log.step(f"{action.capitalize()} service", service=self.site_name)
        try:
            if action == "stop":
                result = self.service_controller.stop(self.site_name)
            else:
                result = self.service_controller.start(self.site_name)
        except ServiceControlError as e:
            record.warn(step, str(e))
            self.log.warn(f"Could not {action} service", error=str(e))
            record.complete(step)
            return

        record.service_results.append(result)
        if not result.available:
            message = f"Service control unavailable; skipping {action}"
            record.warn(step, f"{message}: {result.message}" if result.message else message)
            self.log.warn(message, reason=result.message)
        elif not result.ok:
            record.warn(step, f"Service {action} exited with code {result.exit_code}")
            self.log.warn(f"Service {action} exited with non-zero code", exit_code=result.exit_code)
        else:
            self.log.ok(f"Service {action} completed")
        record.complete(step)

    def _replace(self, record: DeploymentRecord, reference: ArtifactReference) -> None:
        record.enter(DeploymentStep.REPLACE)
        self.log.step("Deploy package", target=str(self.target_dir))
        try:
            warnings = replace_directory_contents(self.target_dir, Path(reference.path))
        except DeployerError as e:
            self._fail(record, DeploymentStep.REPLACE, e)
            if record.backup_path:
                self.log.error("Target may be inconsistent; restore from backup", backup=record.backup_path)
            return
        for w in warnings:
            record.warn(DeploymentStep.REPLACE, str(w), path=w.path)
        self.log.ok("Files extracted", cleanup_warnings=len(warnings))
        record.complete(DeploymentStep.REPLACE)

    def _fail(self, record: DeploymentRecord, step: DeploymentStep, error: DeployerError) -> None:
        record.fail(step, str(error))
        self.log.error(f"Deployment failed during {step.value}", error=str(error), code=error.code)
