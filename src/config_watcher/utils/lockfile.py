"""PID lockfile guarding against concurrent watcher instances."""

import errno
import logging
import os
from pathlib import Path

from config_watcher.errors import LockfileHeld

logger = logging.getLogger("config_watcher.lockfile")


def is_process_running(pid: int) -> bool:
    """Check if a process with the given PID is alive."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except OSError as e:
        # EPERM means the process exists but belongs to someone else
        return e.errno == errno.EPERM
    return True


def read_pid(path: Path) -> int | None:
    """Read the PID recorded in a lockfile, or None if unreadable."""
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return None


def acquire_lock(path: Path) -> None:
    """Create the lockfile with the current PID.

    A lockfile whose PID is not alive is considered stale and removed.

    Raises:
        LockfileHeld: If another live process holds the lock
    """
    if path.exists():
        pid = read_pid(path)
        if pid is not None and pid != os.getpid() and is_process_running(pid):
            raise LockfileHeld(f"Process is already running with PID {pid} (lockfile {path})", pid=pid)

        logger.warning("Found stale lockfile at %s, removing", path)
        path.unlink(missing_ok=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("x") as f:
            f.write(f"{os.getpid()}\n")
    except FileExistsError as e:
        raise LockfileHeld(f"Lockfile {path} was created by another process") from e

    logger.info("Created lockfile %s (PID %d)", path, os.getpid())


def release_lock(path: Path) -> None:
    """Remove the lockfile if it exists."""
    try:
        path.unlink()
    except FileNotFoundError:
        return
    logger.info("Removed lockfile %s", path)
