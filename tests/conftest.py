import subprocess

import pytest

import daemon_manager
from daemon_manager import ServiceRecord


class FakeSystem:
    """Stands in for ``subprocess.run``, answering ``id -g`` and ``systemctl``."""

    def __init__(self, gid=0, running=False, failing=(), missing=(), unrunnable=()):
        self.gid = gid
        self.running = running
        self.failing = set(failing)
        self.missing = set(missing)
        self.unrunnable = set(unrunnable)
        self.calls = []

    def __call__(self, cmd, capture_output=False, text=False, errors=None, check=False):
        cmd = list(cmd)
        self.calls.append(cmd)
        if cmd[0] in self.missing:
            raise FileNotFoundError(2, "No such file or directory", cmd[0])

        if cmd[0] == "id":
            if self.gid is None:
                return self._finish(cmd, 1, "", check)
            return self._finish(cmd, 0, f"{self.gid}\n", check)

        verb = cmd[1]
        if verb in self.unrunnable:
            raise PermissionError(13, "Permission denied", cmd[0])
        if verb == "status":
            if self.running:
                return self._finish(cmd, 0, f"● {cmd[2]} - test unit\n   Active: active (running)\n", check)
            return self._finish(cmd, 3, "", check)
        return self._finish(cmd, 1 if verb in self.failing else 0, "", check)

    @staticmethod
    def _finish(cmd, returncode, stdout, check):
        if check and returncode:
            raise subprocess.CalledProcessError(returncode, cmd, stdout, "")
        return subprocess.CompletedProcess(cmd, returncode, stdout, "")

    def supervisor_verbs(self):
        return [c[1] for c in self.calls if c[0] == daemon_manager.SYSTEMCTL]


@pytest.fixture
def fake_system(monkeypatch):
    system = FakeSystem()
    monkeypatch.setattr(daemon_manager.subprocess, "run", system)
    return system


@pytest.fixture
def unit_dir(tmp_path):
    (tmp_path / "nginx.service").write_text("[Unit]\nDescription=nginx\n")
    return tmp_path


@pytest.fixture
def record(unit_dir):
    return ServiceRecord(name="nginx", unit_directory=str(unit_dir) + "/")
