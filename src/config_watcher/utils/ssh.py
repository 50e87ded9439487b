"""SSH credential scaffolding for Git authentication."""

import logging
import os
from pathlib import Path

from config_watcher.errors import CommandFailed, ToolMissing
from config_watcher.utils.cmd import run_cmd

logger = logging.getLogger("config_watcher.ssh")

KEY_FILENAME = "id_rsa_config_watcher"
KNOWN_HOSTS = ("github.com", "gitlab.com", "bitbucket.org", "azure.com")


def _ssh_dir() -> Path:
    return Path.home() / ".ssh"


def add_known_hosts(known_hosts: Path, hosts: tuple[str, ...] = KNOWN_HOSTS) -> list[str]:
    """Append host keys from ssh-keyscan for hosts not already present.

    Returns:
        Hosts that were added
    """
    existing = known_hosts.read_text() if known_hosts.exists() else ""
    added = []

    for host in hosts:
        if host in existing:
            continue

        logger.info("Adding %s to known hosts", host)
        try:
            result = run_cmd(["ssh-keyscan", host])
        except (CommandFailed, ToolMissing) as e:
            logger.warning("Failed to scan host key for %s: %s", host, e.message)
            continue

        if result.returncode != 0 or not result.stdout.strip():
            logger.warning("Failed to add %s to known hosts", host)
            continue

        with known_hosts.open("a") as f:
            f.write(result.stdout if result.stdout.endswith("\n") else result.stdout + "\n")
        added.append(host)

    return added


def setup_ssh_key(key_content: str, ssh_dir: Path | None = None) -> Path:
    """Write a private key to a 0600 file and seed known_hosts.

    Args:
        key_content: Private key material (never logged)
        ssh_dir: SSH directory, defaults to ~/.ssh

    Returns:
        Path of the key file, to be handed to the Git adapter

    Raises:
        ValueError: If the key is empty
    """
    if not key_content or not key_content.strip():
        msg = "Empty SSH key provided"
        raise ValueError(msg)

    logger.info("Setting up SSH keys for Git authentication")

    ssh_dir = ssh_dir or _ssh_dir()
    ssh_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(ssh_dir, 0o700)

    key_path = ssh_dir / KEY_FILENAME
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(key_content if key_content.endswith("\n") else key_content + "\n")
    os.chmod(key_path, 0o600)

    known_hosts = ssh_dir / "known_hosts"
    add_known_hosts(known_hosts)
    if known_hosts.exists():
        os.chmod(known_hosts, 0o644)

    logger.info("SSH authentication setup complete")
    return key_path
