"""Stop/start capability for the service that serves the deployment target."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Protocol

import structlog

from terminal_deployer.core.config import Settings
from terminal_deployer.core.exceptions import ConfigurationError, ServiceControlError
from terminal_deployer.deploy.models import ServiceCommandResult

logger = structlog.get_logger()

DEFAULT_COMMAND_TIMEOUT = 120.0


class ServiceController(Protocol):
    """Blocking stop/start of a named service.

    Implementations report an unavailable mechanism through
    ``ServiceCommandResult.available`` and raise ServiceControlError only when
    a command exists but cannot be invoked.
    """

    def stop(self, name: str) -> ServiceCommandResult: ...

    def start(self, name: str) -> ServiceCommandResult: ...


class NoopServiceController:
    """For hosts without process-level service control."""

    def __init__(self, reason: str = "Service control not available on this host"):
        self.reason = reason

    def stop(self, name: str) -> ServiceCommandResult:
        return ServiceCommandResult(action="stop", name=name, available=False, message=self.reason)

    def start(self, name: str) -> ServiceCommandResult:
        return ServiceCommandResult(action="start", name=name, available=False, message=self.reason)


def _run_command(action: str, name: str, cmd: List[str], cwd: Optional[str] = None,
                 timeout: float = DEFAULT_COMMAND_TIMEOUT) -> ServiceCommandResult:
    logger.info("Running service command", action=action, service=name, command=" ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ServiceControlError(f"Failed to {action} service '{name}': {e}", code="INVOCATION_FAILED") from e

    result = ServiceCommandResult(
        action=action,
        name=name,
        exit_code=proc.returncode,
        stdout=(proc.stdout or "").strip(),
        stderr=(proc.stderr or "").strip(),
    )
    if result.stdout:
        logger.info("Service command output", action=action, output=result.stdout)
    if result.stderr:
        logger.error("Service command error output", action=action, output=result.stderr)
    if proc.returncode != 0:
        logger.warning("Service command exited with non-zero code", action=action, exit_code=proc.returncode)
    return result


class AppCmdServiceController:
    """IIS site control through appcmd.exe."""

    def __init__(self, appcmd_path: str, timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.appcmd_path = appcmd_path
        self.timeout = timeout

    def stop(self, name: str) -> ServiceCommandResult:
        return self._run("stop", name)

    def start(self, name: str) -> ServiceCommandResult:
        return self._run("start", name)

    def _run(self, action: str, name: str) -> ServiceCommandResult:
        if not Path(self.appcmd_path).is_file():
            logger.warning("appcmd not found; skipping IIS command", appcmd=self.appcmd_path)
            return ServiceCommandResult(
                action=action, name=name, available=False, message=f"appcmd not found at {self.appcmd_path}"
            )
        cmd = [self.appcmd_path, action, "site", f"/site.name:{name}"]
        return _run_command(action, name, cmd, cwd=os.path.dirname(self.appcmd_path), timeout=self.timeout)


class CommandServiceController:
    """Templated shell-free commands, e.g. ``systemctl stop {name}``."""

    def __init__(self, stop_command: str, start_command: str, timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.stop_command = stop_command
        self.start_command = start_command
        self.timeout = timeout

    def stop(self, name: str) -> ServiceCommandResult:
        return self._run("stop", self.stop_command, name)

    def start(self, name: str) -> ServiceCommandResult:
        return self._run("start", self.start_command, name)

    def _run(self, action: str, template: str, name: str) -> ServiceCommandResult:
        cmd = [part.replace("{name}", name) for part in shlex.split(template)]
        if not cmd or shutil.which(cmd[0]) is None:
            logger.warning("Service command executable not found", action=action, command=template)
            return ServiceCommandResult(
                action=action, name=name, available=False, message=f"Executable not found for '{template}'"
            )
        return _run_command(action, name, cmd, timeout=self.timeout)


def build_service_controller(settings: Settings, platform: Optional[str] = None) -> ServiceController:
    """Pick the controller for this host from configuration."""
    platform = platform or sys.platform
    mode = settings.service_control

    if mode == "auto":
        mode = "iis" if platform.startswith("win") else "none"

    if mode == "iis":
        return AppCmdServiceController(settings.appcmd_path)
    if mode == "command":
        if not settings.service_stop_command or not settings.service_start_command:
            raise ConfigurationError(
                "service_control=command requires service_stop_command and service_start_command",
                code="SERVICE_COMMANDS_MISSING",
            )
        return CommandServiceController(settings.service_stop_command, settings.service_start_command)
    return NoopServiceController(f"Service control disabled on {platform}")
