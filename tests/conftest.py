"""Pytest configuration and shared fixtures."""

import subprocess

import pytest
from typer.testing import CliRunner

from config_watcher.model import GlobalSettings, ServiceConfig
from config_watcher.utils.docker import ContainerStatus

COMMIT_A = "a" * 40
COMMIT_B = "b" * 40
COMMIT_C = "c" * 40


@pytest.fixture
def cli_runner():
    """CLI runner for typer testing."""
    return CliRunner()


@pytest.fixture
def sample_service_data(tmp_path):
    """Sample nginx service entry of a services document."""
    return {
        "name": "web",
        "container_name": "web_nginx",
        "service_type": "nginx",
        "repo_url": "https://example.com/web-config.git",
        "branch": "main",
        "local_path": str(tmp_path / "web"),
        "restart_command": "docker restart web_nginx",
        "permissions": {"fix": True, "user": "nginx", "group": "nginx"},
    }


@pytest.fixture
def sample_config_data(sample_service_data, tmp_path):
    """Sample services document with two services."""
    return {
        "global_settings": {
            "watch_interval": 30,
            "default_branch": "main",
            "startup_grace_period": "1m",
        },
        "services": [
            sample_service_data,
            {
                "name": "api",
                "container_name": "api_app",
                "repo_url": "https://example.com/api-config.git",
                "local_path": str(tmp_path / "api"),
                "use_docker_compose": True,
                "docker_compose_dir": str(tmp_path / "compose"),
            },
        ],
    }


@pytest.fixture
def settings():
    """Global settings without grace period."""
    return GlobalSettings(startup_grace_period="0", watch_interval=60)


@pytest.fixture
def generic_service(tmp_path):
    """Generic service restarted with plain Docker."""
    return ServiceConfig(
        name="app",
        container_name="app_container",
        repo_url="https://example.com/app-config.git",
        local_path=tmp_path / "app",
        monitor_logs=False,
    )


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    """Build a CompletedProcess as returned by run_cmd."""
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class FakeGit:
    """Scripted Git worktree.

    ``pulls`` holds one outcome per check_and_pull call: a commit hash
    (pulled), None (no change) or an exception to raise.
    """

    def __init__(self, head: str = COMMIT_A, existed: bool = False, branch: str = "main") -> None:
        self.branch = branch
        self.head = head
        self.reflog = [head]
        self.existed = existed
        self.pulls: list = []
        self.calls: list[str] = []
        self.ensure_error: Exception | None = None
        self.ensure_pulls: str | None = None

    def is_worktree(self) -> bool:
        return self.existed

    def head_hash(self) -> str:
        return self.head

    def _move(self, commit: str) -> None:
        self.head = commit
        self.reflog.append(commit)

    def ensure(self) -> bool:
        self.calls.append("ensure")
        if self.ensure_error is not None:
            raise self.ensure_error
        if self.ensure_pulls:
            self._move(self.ensure_pulls)
            return True
        return not self.existed

    def check_and_pull(self) -> bool:
        self.calls.append("check_and_pull")
        if not self.pulls:
            return False
        outcome = self.pulls.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return False
        self._move(outcome)
        return True

    def revert_last(self) -> None:
        self.calls.append("revert_last")
        if len(self.reflog) > 1:
            self.reflog.pop()
            self.head = self.reflog[-1]

    def reset_hard(self, ref: str) -> None:
        self.calls.append(f"reset_hard {ref}")
        self._move(ref)


class FakeRuntime:
    """In-memory container runtime recording every call."""

    def __init__(self, status: ContainerStatus = ContainerStatus.RUNNING, logs: str = "") -> None:
        self._status = status
        self.logs = logs
        self.calls: list[tuple] = []
        self.restart_error: Exception | None = None
        self.exec_results: dict[str, subprocess.CompletedProcess] = {}

    def status(self, name):
        self.calls.append(("status", name))
        return self._status

    def restart_simple(self, name):
        self.calls.append(("restart_simple", name))
        if self.restart_error is not None:
            raise self.restart_error

    def compose_restart(self, compose_dir, compose_file, service):
        self.calls.append(("compose_restart", compose_dir, compose_file, service))

    def compose_recreate(self, compose_dir, compose_file):
        self.calls.append(("compose_recreate", compose_dir, compose_file))

    def tail_logs(self, name, lines):
        self.calls.append(("tail_logs", name, lines))
        return self.logs

    def exec(self, name, script, *, user=None):
        self.calls.append(("exec", name, script, user))
        return self.exec_results.get(script, completed())

    def called(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]


class FakeShutdown:
    """Shutdown event that records waits and fires after ``max_waits``."""

    def __init__(self, max_waits: int = 2) -> None:
        self.waits: list[float | None] = []
        self.max_waits = max_waits
        self._set = False

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        if len(self.waits) >= self.max_waits:
            self._set = True
        return self._set

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        self._set = True


class RecordingNotifier:
    """Healthcheck notifier collecting (url, message, is_error) tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str | None, str, bool]] = []

    def __call__(self, url, message, is_error=False):
        self.events.append((url, message, is_error))
        return True

    @property
    def failures(self) -> list[str]:
        return [message for _, message, is_error in self.events if is_error]

    @property
    def successes(self) -> list[str]:
        return [message for _, message, is_error in self.events if not is_error]


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def notifier():
    return RecordingNotifier()
