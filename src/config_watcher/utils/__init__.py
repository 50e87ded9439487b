"""Adapters for git, docker, the filesystem and external endpoints."""

from config_watcher.utils.docker import ContainerStatus, DockerRuntime
from config_watcher.utils.duration import parse_duration
from config_watcher.utils.git import GitWorktree
from config_watcher.utils.healthcheck import notify

__all__ = [
    "ContainerStatus",
    "DockerRuntime",
    "GitWorktree",
    "notify",
    "parse_duration",
]
