"""Filesystem ownership and mode policy, on the host and inside containers."""

import logging
import os
import shlex
import stat
from pathlib import Path

from config_watcher.errors import CommandFailed, PermissionFailed, ToolMissing
from config_watcher.utils.cmd import run_cmd, tail_text
from config_watcher.utils.docker import ContainerStatus, DockerRuntime

logger = logging.getLogger("config_watcher.permissions")

HOST_DIR_MODE = 0o750
HOST_FILE_MODE = 0o640
HOST_SCRIPT_MODE = 0o750

CONTAINER_DIR_MODE = "755"
CONTAINER_FILE_MODE = "644"

PLACEHOLDER_INDEX = """<!DOCTYPE html>
<html>
<head>
  <title>Welcome</title>
</head>
<body>
  <h1>Welcome</h1>
  <p>Site under construction</p>
</body>
</html>
"""


def _host_mode(path: str, is_dir: bool) -> int:
    if is_dir:
        return HOST_DIR_MODE
    if path.endswith(".sh"):
        return HOST_SCRIPT_MODE
    return HOST_FILE_MODE


def _set_mode(path: str, mode: int) -> bool:
    """chmod ``path`` unless it is a symlink or already has ``mode``."""
    st = os.lstat(path)
    if stat.S_ISLNK(st.st_mode):
        return False
    if stat.S_IMODE(st.st_mode) == mode:
        return False
    os.chmod(path, mode)
    return True


def apply_host_modes(root: Path) -> int:
    """Depth-first walk setting directory, file and script modes.

    Symlinks are neither followed nor modified.

    Returns:
        Number of entries whose mode changed
    """
    changed = 0

    def onerror(error: OSError) -> None:
        logger.warning("Cannot walk %s: %s", error.filename, error.strerror)

    for dirpath, dirnames, filenames in os.walk(root, topdown=False, onerror=onerror, followlinks=False):
        for name in filenames:
            path = os.path.join(dirpath, name)
            if os.path.islink(path) or not os.path.isfile(path):
                continue
            changed += _set_mode(path, _host_mode(name, is_dir=False))
        for name in dirnames:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                continue
            changed += _set_mode(path, HOST_DIR_MODE)

    changed += _set_mode(str(root), HOST_DIR_MODE)
    return changed


def _chown(owner: str, path: Path) -> tuple[bool, str]:
    try:
        result = run_cmd(["chown", "-R", owner, str(path)])
    except (CommandFailed, ToolMissing) as e:
        return False, e.message
    return result.returncode == 0, tail_text(result.stderr)


def fix_host_permissions(
    path: Path,
    user: str,
    group: str,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> None:
    """Apply the (user, group, 0750/0640/0750 for *.sh) policy to a tree.

    Ownership falls back to numeric USER_ID/GROUP_ID from the environment
    when the named user/group is rejected. Modes are applied either way.

    Raises:
        PermissionFailed: If the tree is missing or ownership could not be set
    """
    log = log or logger

    if not path.exists():
        raise PermissionFailed(f"Directory does not exist: {path}")

    log.debug("Fixing permissions for %s to %s:%s", path, user, group)

    owner = f"{user}:{group}"
    ok, error = _chown(owner, path)
    if not ok:
        uid, gid = os.environ.get("USER_ID"), os.environ.get("GROUP_ID")
        if uid and gid:
            log.warning(
                "Failed to change ownership with named user/group, trying numeric IDs %s:%s",
                uid,
                gid,
            )
            owner = f"{uid}:{gid}"
            ok, error = _chown(owner, path)

    try:
        apply_host_modes(path)
    except OSError as e:
        raise PermissionFailed(f"Failed to set modes under {path}: {e}") from e

    if not ok:
        raise PermissionFailed(f"Failed to change ownership of {path} to {owner}: {error}")

    log.info("Fixed permissions for %s to %s", path, owner)


def _index_script(web_root: str, user: str, group: str) -> str:
    owner = shlex.quote(f"{user}:{group}")
    return (
        f"find {shlex.quote(web_root)} -type d | while IFS= read -r d; do "
        'if ! ls -A "$d" | grep -q "^index\\."; then '
        f'printf "%s" {shlex.quote(PLACEHOLDER_INDEX)} > "$d/index.html" && '
        f'chown {owner} "$d/index.html" && chmod {CONTAINER_FILE_MODE} "$d/index.html" && '
        'echo "$d"; fi; done'
    )


def fix_container_permissions(
    runtime: DockerRuntime,
    container: str,
    user: str,
    group: str,
    web_root: str,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> bool:
    """Fix web root ownership, index files and Nginx config modes in a container.

    Only runs when the container is running.

    Returns:
        True if the policy was applied, False if the container is not running

    Raises:
        PermissionFailed: If the web root ownership or modes could not be set
    """
    log = log or logger

    if runtime.status(container) != ContainerStatus.RUNNING:
        log.warning("Cannot fix permissions - container %s is not running", container)
        return False

    log.info("Setting ownership and permissions for web content in %s", web_root)
    root = shlex.quote(web_root)
    owner = shlex.quote(f"{user}:{group}")
    web_root_script = (
        f"mkdir -p {root} && chown -R {owner} {root} && "
        f"find {root} -type d -exec chmod {CONTAINER_DIR_MODE} {{}} + && "
        f"find {root} -type f -exec chmod {CONTAINER_FILE_MODE} {{}} +"
    )
    result = runtime.exec(container, web_root_script, user="root")
    if result.returncode != 0:
        raise PermissionFailed(f"Permission fixing failed for {web_root}: {tail_text(result.stderr)}")

    result = runtime.exec(container, _index_script(web_root, user, group), user="root")
    if result.returncode != 0:
        log.warning("Failed to create missing index files: %s", tail_text(result.stderr))
    for created in result.stdout.splitlines():
        if created.strip():
            log.info("Created default index.html in %s", created.strip())

    conf_script = "chmod 644 /etc/nginx/conf.d/*.conf /etc/nginx/nginx.conf"
    result = runtime.exec(container, conf_script, user="root")
    if result.returncode != 0:
        log.warning("Failed to fix Nginx configuration permissions: %s", tail_text(result.stderr))

    result = runtime.exec(container, "nginx -t")
    if result.returncode != 0:
        log.warning("Nginx configuration test failed: %s", tail_text(result.stderr))
    else:
        log.info("Nginx configuration test passed")

    return True
