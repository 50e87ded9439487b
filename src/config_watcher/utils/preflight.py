"""Startup dependency checks."""

import logging
import shutil

from config_watcher.errors import CommandFailed, DependencyMissing, ToolMissing
from config_watcher.utils.cmd import run_cmd

logger = logging.getLogger("config_watcher.preflight")

REQUIRED_TOOLS = ("git", "docker", "chown", "chmod", "find")


def compose_available() -> bool:
    """Check whether either compose form is usable."""
    if shutil.which("docker-compose") is not None:
        return True
    try:
        return run_cmd(["docker", "compose", "version"], timeout=10).returncode == 0
    except (CommandFailed, ToolMissing):
        return False


def check_dependencies(need_ssh_keyscan: bool = False) -> None:
    """Verify that required executables are on PATH.

    Raises:
        DependencyMissing: Naming every missing tool
    """
    logger.info("Checking for required dependencies")

    tools = list(REQUIRED_TOOLS)
    if need_ssh_keyscan:
        tools.append("ssh-keyscan")

    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise DependencyMissing(missing)

    if not compose_available():
        logger.warning("Neither 'docker compose' nor 'docker-compose' are available in PATH")

    logger.info("All required dependencies are available")
