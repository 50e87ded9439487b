"""Command execution utilities with logging."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Any

from config_watcher.errors import CommandTimeout, ToolMissing

logger = logging.getLogger("config_watcher.cmd")

# Deadline applied to every subprocess launched by a reconciliation loop
DEFAULT_COMMAND_TIMEOUT = 60

# Global flag to control command display
_show_commands = False


def set_show_commands(show: bool) -> None:
    """Enable or disable command display."""
    global _show_commands
    _show_commands = show


def get_show_commands() -> bool:
    """Get current show_commands setting."""
    return _show_commands


def quote_arg(arg: str) -> str:
    """Quote argument if it contains spaces or special characters."""
    if " " in arg or any(c in arg for c in "'\"$\\"):
        # Use single quotes, escape any single quotes in the string
        return "'" + arg.replace("'", "'\\''") + "'"
    return arg


def tail_text(text: str, lines: int = 10) -> str:
    """Return the last ``lines`` non-empty lines of a command output."""
    kept = [line for line in (text or "").splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


def run_cmd(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = DEFAULT_COMMAND_TIMEOUT,
    check: bool = False,
    show: bool | None = None,
    **kwargs: Any,
) -> subprocess.CompletedProcess[str]:
    """Run a command with optional display.

    Args:
        cmd: Command and arguments as list
        cwd: Working directory
        env: Extra environment variables, merged over the process environment
        timeout: Deadline in seconds
        check: Raise CalledProcessError on non-zero exit code
        show: Override global show_commands setting
        **kwargs: Additional subprocess.run arguments

    Returns:
        CompletedProcess result with text stdout/stderr

    Raises:
        CommandTimeout: If the deadline is exceeded
        ToolMissing: If the executable is not on PATH
    """
    should_show = show if show is not None else _show_commands
    cmd_str = " ".join(quote_arg(arg) for arg in cmd)

    if should_show:
        logger.info("$ %s", cmd_str)
    else:
        logger.debug("$ %s", cmd_str)

    full_env = None
    if env:
        full_env = {**os.environ, **env}

    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            env=full_env,
            check=check,
            capture_output=True,
            text=True,
            timeout=timeout,
            **kwargs,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeout(f"Command timed out after {timeout}s: {cmd_str}", timeout=timeout) from e
    except FileNotFoundError as e:
        raise ToolMissing(f"Executable not found: {cmd[0]}") from e


def run_shell(
    script: str,
    *,
    cwd: Path | str | None = None,
    timeout: float | None = DEFAULT_COMMAND_TIMEOUT,
) -> subprocess.CompletedProcess[str]:
    """Run a user-supplied command line through ``sh -c``."""
    return run_cmd(["sh", "-c", script], cwd=cwd, timeout=timeout)
