"""
Start, stop, restart and query a single systemd unit.

Every operation checks, in order, that the process runs with root group
privileges, that the unit file exists and whether the unit is currently
running, before handing the actual work to ``systemctl``.
"""
import logging
import os
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SYSTEMCTL = os.environ.get("SYSTEMCTL", "systemctl")

SUCCESS = "[  OK  ]"
FAILED = "[  FAILED  ]"

STATUS_NOT_INSTALLED = "Service not installed"


class DaemonManagerError(Exception):
    """Base error; ``status_line`` is the text reported for the failed action."""

    default_message = "Service operation failed"

    def __init__(self, message=None, status_line=""):
        super().__init__(message or self.default_message)
        self.status_line = status_line


class UnsupportedPlatformError(DaemonManagerError):
    default_message = "Unsupported system"


class PrivilegeError(DaemonManagerError):
    default_message = "You must have root user privileges. Possibly using 'sudo' command should help"


class NotInstalledError(DaemonManagerError):
    default_message = "Service is not installed"


class AlreadyRunningError(DaemonManagerError):
    default_message = "Service is already running"


class AlreadyStoppedError(DaemonManagerError):
    default_message = "Service has already been stopped"


class SupervisorError(DaemonManagerError):
    default_message = "Supervisor command failed"


@dataclass(frozen=True)
class ServiceRecord:
    name: str
    unit_directory: str

    def __post_init__(self):
        if not self.name:
            raise ValueError("service name must not be empty")
        if not self.unit_directory:
            raise ValueError("unit directory must not be empty")

    @property
    def unit_name(self) -> str:
        return self.name + ".service"

    @property
    def unit_file_path(self) -> str:
        return os.path.join(self.unit_directory, self.unit_name)


def check_privileges() -> bool:
    """Return True when the current group id is 0.

    Raises PrivilegeError for any other group id and
    UnsupportedPlatformError when the group id cannot be determined.
    """
    try:
        result = subprocess.run(["id", "-g"], capture_output=True, text=True, errors="replace", check=True)
        gid = int(result.stdout.strip())
    except (OSError, subprocess.CalledProcessError, ValueError) as exc:
        logger.debug("Could not determine group id: %s", exc)
        raise UnsupportedPlatformError() from exc
    if gid < 0:
        raise UnsupportedPlatformError()
    if gid == 0:
        return True
    raise PrivilegeError()


class DaemonManager:
    """Controller for the unit described by a ServiceRecord."""

    def __init__(self, record: ServiceRecord):
        self.record = record

    @property
    def name(self) -> str:
        return self.record.name

    def is_installed(self) -> bool:
        return os.path.exists(self.record.unit_file_path)

    def check_running(self):
        """Probe the unit with ``systemctl status``.

        Returns ``(output, True)`` when the probe exits 0. Anything else,
        including a missing ``systemctl`` binary, counts as stopped.
        """
        try:
            result = subprocess.run(
                [SYSTEMCTL, "status", self.record.unit_name],
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            logger.debug("Status probe for %s could not run: %s", self.record.unit_name, exc)
            return f"Service {self.name} is stopped", False
        if result.returncode == 0:
            return result.stdout, True
        logger.debug("Status probe for %s exited with status %d", self.record.unit_name, result.returncode)
        return f"Service {self.name} is stopped", False

    def _run_supervisor(self, verb, action):
        command = [SYSTEMCTL, verb, self.record.unit_name]
        try:
            subprocess.run(command, capture_output=True, text=True, errors="replace", check=True)
        except subprocess.CalledProcessError as exc:
            raise SupervisorError(
                f"{' '.join(command)} exited with status {exc.returncode}",
                status_line=action + FAILED,
            ) from exc
        except OSError as exc:
            raise SupervisorError(
                f"{' '.join(command)} could not be run: {exc}",
                status_line=action + FAILED,
            ) from exc

    def _check_preconditions(self, action):
        try:
            check_privileges()
        except DaemonManagerError as exc:
            exc.status_line = action + FAILED
            raise
        if not self.is_installed():
            raise NotInstalledError(status_line=action + FAILED)

    def start(self) -> str:
        action = f"Starting {self.name}:"
        self._check_preconditions(action)

        _, running = self.check_running()
        if running:
            raise AlreadyRunningError(status_line=action + FAILED)

        self._run_supervisor("start", action)
        return action + SUCCESS

    def stop(self) -> str:
        action = f"Stopping {self.name}:"
        self._check_preconditions(action)

        _, running = self.check_running()
        if not running:
            raise AlreadyStoppedError(status_line=action + FAILED)

        self._run_supervisor("stop", action)
        return action + SUCCESS

    def restart(self) -> str:
        # a stopped unit is refused rather than started
        action = f"Restart {self.name}:"
        self._check_preconditions(action)

        _, running = self.check_running()
        if not running:
            raise AlreadyStoppedError(status_line=action + FAILED)

        self._run_supervisor("restart", action)
        return action + SUCCESS

    def status(self) -> str:
        check_privileges()

        if not self.is_installed():
            raise NotInstalledError(status_line=STATUS_NOT_INSTALLED)

        output, _ = self.check_running()
        return output
