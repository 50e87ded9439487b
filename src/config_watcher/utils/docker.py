"""Docker and Docker Compose utilities."""

import logging
import shlex
import threading
import time
from enum import Enum
from pathlib import Path

from config_watcher.errors import (
    CommandFailed,
    ComposeFileMissing,
    ContainerMissing,
    ToolMissing,
)
from config_watcher.utils.cmd import run_cmd, tail_text

logger = logging.getLogger("config_watcher.docker")

# Post-restart delays before the container is considered stable
RESTART_WARMUP = 2
COMPOSE_WARMUP = 5

DEFAULT_COMPOSE_FILES = ("docker-compose.yml", "compose.yml")

V2_COMPOSE = ["docker", "compose"]

# docker CLI replies when the compose plugin is not installed
_PLUGIN_MISSING_MARKERS = ("is not a docker command", "unknown command")


class ContainerStatus(str, Enum):
    """Observed state of a named container."""

    RUNNING = "running"
    STOPPED = "stopped"
    NOT_EXISTS = "not_exists"


def _compose_plugin_missing(result) -> bool:
    output = f"{result.stderr or ''}\n{result.stdout or ''}".lower()
    return any(marker in output for marker in _PLUGIN_MISSING_MARKERS)


def _check(result, action: str) -> None:
    if result.returncode != 0:
        stderr = tail_text(result.stderr or result.stdout)
        raise CommandFailed(
            f"{action} failed with exit code {result.returncode}: {stderr}",
            exit_code=result.returncode,
            stderr_tail=stderr,
        )


def select_compose_file(compose_dir: Path, compose_file: str | None = None) -> str:
    """Pick the compose file to pass with ``-f``.

    A configured file is used when it exists in ``compose_dir``; otherwise
    ``docker-compose.yml`` then ``compose.yml`` are tried.

    Raises:
        ComposeFileMissing: If no candidate exists
    """
    if compose_file and (compose_dir / compose_file).exists():
        return compose_file

    for candidate in DEFAULT_COMPOSE_FILES:
        if (compose_dir / candidate).exists():
            return candidate

    raise ComposeFileMissing(f"No docker-compose.yml or compose.yml file found in {compose_dir}")


class DockerRuntime:
    """Container runtime adapter over the docker CLI.

    The compose command form (v2 ``docker compose`` or legacy
    ``docker-compose``) is detected once and cached; a cached form that
    later turns out to be missing is re-detected.
    """

    def __init__(self, sleep=time.sleep) -> None:
        self._sleep = sleep
        self._compose_cmd: list[str] | None = None
        self._lock = threading.Lock()

    # Containers

    def _ps_names(self, name: str, all_containers: bool) -> list[str]:
        cmd = ["docker", "ps"]
        if all_containers:
            cmd.append("-a")
        cmd += ["--format", "{{.Names}}", "--filter", f"name=^/?{name}$"]
        result = run_cmd(cmd)
        _check(result, "docker ps")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def status(self, name: str) -> ContainerStatus:
        """Get the status of a container by exact name."""
        if name in self._ps_names(name, all_containers=False):
            logger.debug("Container %s is running", name)
            return ContainerStatus.RUNNING

        if name in self._ps_names(name, all_containers=True):
            logger.debug("Container %s exists but is not running", name)
            return ContainerStatus.STOPPED

        logger.debug("Container %s does not exist", name)
        return ContainerStatus.NOT_EXISTS

    def restart_simple(self, name: str) -> None:
        """Restart a running container or start a stopped one.

        Raises:
            ContainerMissing: If the container does not exist
            CommandFailed: If docker restart/start fails
        """
        status = self.status(name)

        if status == ContainerStatus.RUNNING:
            logger.info("Restarting running container %s", name)
            _check(run_cmd(["docker", "restart", name]), f"docker restart {name}")
        elif status == ContainerStatus.STOPPED:
            logger.info("Starting stopped container %s", name)
            _check(run_cmd(["docker", "start", name]), f"docker start {name}")
        else:
            raise ContainerMissing(f"Container {name} does not exist and cannot be restarted")

        self._sleep(RESTART_WARMUP)

    def tail_logs(self, name: str, lines: int) -> str:
        """Return combined stdout and stderr of the last ``lines`` log lines.

        Raises:
            ContainerMissing: If the container does not exist
        """
        result = run_cmd(["docker", "logs", "--tail", str(lines), name])
        if result.returncode != 0:
            if "No such container" in (result.stderr or ""):
                raise ContainerMissing(f"Container {name} does not exist")
            _check(result, f"docker logs {name}")
        return f"{result.stdout}\n{result.stderr}"

    def exec(
        self,
        name: str,
        script: str,
        *,
        user: str | None = None,
    ):
        """Run a shell script inside a running container."""
        cmd = ["docker", "exec"]
        if user:
            cmd += ["-u", user]
        cmd += [name, "sh", "-c", script]
        return run_cmd(cmd)

    # Compose

    def compose_tool_detect(self) -> tuple[str, bool]:
        """Detect the compose command form.

        Returns:
            ("docker compose", True) for v2, ("docker-compose", False) otherwise
        """
        try:
            result = run_cmd(["docker", "compose", "version"])
            if result.returncode == 0:
                return "docker compose", True
        except ToolMissing:
            pass
        return "docker-compose", False

    def _compose_base(self) -> list[str]:
        with self._lock:
            if self._compose_cmd is None:
                tool, _is_v2 = self.compose_tool_detect()
                logger.info("Using %s command", tool)
                self._compose_cmd = shlex.split(tool)
            return list(self._compose_cmd)

    def _forget_compose(self) -> None:
        with self._lock:
            self._compose_cmd = None
        logger.warning("Cached compose command is unavailable, detecting again")

    def _compose(self, compose_dir: Path, compose_file: str | None, args: list[str]):
        selected = select_compose_file(compose_dir, compose_file)
        base = self._compose_base()
        try:
            result = run_cmd([*base, "-f", selected, *args], cwd=compose_dir)
        except ToolMissing:
            self._forget_compose()
            return run_cmd([*self._compose_base(), "-f", selected, *args], cwd=compose_dir)

        if base == V2_COMPOSE and result.returncode != 0 and _compose_plugin_missing(result):
            self._forget_compose()
            return run_cmd([*self._compose_base(), "-f", selected, *args], cwd=compose_dir)
        return result

    def compose_restart(self, compose_dir: Path, compose_file: str | None, service: str) -> None:
        """Run ``compose restart <service>`` in a compose project."""
        logger.info("Restarting %s with Docker Compose", service)
        result = self._compose(compose_dir, compose_file, ["restart", service])
        _check(result, "compose restart")
        logger.info("Container %s restarted successfully with Docker Compose", service)
        self._sleep(COMPOSE_WARMUP)

    def compose_recreate(self, compose_dir: Path, compose_file: str | None) -> None:
        """Recreate a compose project with ``down``, ``build`` and ``up -d``.

        A failing ``down`` is logged and ignored; ``build`` or ``up`` failures raise.
        """
        logger.info("Stopping containers with Docker Compose")
        down = self._compose(compose_dir, compose_file, ["down"])
        if down.returncode != 0:
            logger.warning("Docker Compose down command failed, continuing anyway: %s", tail_text(down.stderr))

        logger.info("Building containers with Docker Compose")
        _check(self._compose(compose_dir, compose_file, ["build"]), "compose build")

        logger.info("Starting containers with Docker Compose")
        _check(self._compose(compose_dir, compose_file, ["up", "-d"]), "compose up")

        logger.info("Containers recreated successfully with Docker Compose")
        self._sleep(COMPOSE_WARMUP)
