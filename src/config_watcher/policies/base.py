"""Shared building blocks for service-type policies."""

import logging
from dataclasses import dataclass, field

from config_watcher.errors import (
    CommandFailed,
    RestartFailed,
    ToolMissing,
    ValidationFailed,
)
from config_watcher.model.service import ServiceConfig
from config_watcher.model.settings import GlobalSettings
from config_watcher.utils.cmd import run_shell, tail_text
from config_watcher.utils.docker import ContainerStatus, DockerRuntime

# Number of matching log lines echoed to the log
LOG_SAMPLE_LINES = 5


@dataclass
class ServiceContext:
    """Everything a policy function needs to act on one service."""

    service: ServiceConfig
    settings: GlobalSettings
    runtime: DockerRuntime
    log: logging.Logger | logging.LoggerAdapter


@dataclass
class LogScanResult:
    """Outcome of scanning the tail of a container's logs."""

    error_lines: list[str] = field(default_factory=list)
    forbidden_count: int = 0

    @property
    def error_count(self) -> int:
        return len(self.error_lines)


def run_validation_command(ctx: ServiceContext) -> None:
    """Run the service's validation_command.

    Raises:
        ValidationFailed: On non-zero exit or timeout
    """
    cmd = ctx.service.validation_command
    ctx.log.info("Running validation command: %s", cmd)
    try:
        result = run_shell(cmd)
    except (CommandFailed, ToolMissing) as e:
        raise ValidationFailed(f"Validation command failed: {e.message}") from e

    if result.returncode != 0:
        stderr = tail_text(result.stderr or result.stdout)
        ctx.log.error("Validation failed with exit code %s: %s", result.returncode, stderr)
        raise ValidationFailed(f"Validation command exited with code {result.returncode}")

    ctx.log.info("Validation successful")


def run_restart_command(ctx: ServiceContext) -> None:
    """Run the service's restart_command.

    Raises:
        RestartFailed: On non-zero exit or timeout
    """
    cmd = ctx.service.restart_command
    ctx.log.info("Using custom restart command: %s", cmd)
    try:
        result = run_shell(cmd)
    except (CommandFailed, ToolMissing) as e:
        raise RestartFailed(f"Restart command failed: {e.message}") from e

    if result.returncode != 0:
        stderr = tail_text(result.stderr or result.stdout)
        raise RestartFailed(f"Restart command exited with code {result.returncode}: {stderr}")

    ctx.log.info("Custom restart command executed successfully")


def runtime_restart(ctx: ServiceContext) -> None:
    """Restart via restart_command, Docker Compose or plain Docker.

    In compose mode a missing container is recreated (down/build/up);
    otherwise the named service is restarted in place.

    Raises:
        RestartFailed: If a restart command fails
        ContainerMissing: If plain Docker has no container to restart
        ComposeFileMissing: If the compose project has no compose file
    """
    service, settings, runtime = ctx.service, ctx.settings, ctx.runtime

    if service.restart_command:
        run_restart_command(ctx)
        return

    try:
        if service.effective_use_docker_compose(settings):
            compose_dir = service.compose_dir(settings)
            if compose_dir is None:
                raise RestartFailed("No compose directory configured")
            compose_file = service.compose_file(settings)

            if runtime.status(service.container_name) == ContainerStatus.NOT_EXISTS:
                ctx.log.info("Container does not exist, recreating with Docker Compose")
                runtime.compose_recreate(compose_dir, compose_file)
            else:
                ctx.log.info("Restarting with Docker Compose")
                runtime.compose_restart(compose_dir, compose_file, service.container_name)
        else:
            runtime.restart_simple(service.container_name)
    except (CommandFailed, ToolMissing) as e:
        raise RestartFailed(f"Restart of {service.container_name} failed: {e.message}") from e


def scan_log_text(text: str) -> LogScanResult:
    """Collect lines containing "error" (any case) and count 403s among them."""
    errors = [line for line in text.splitlines() if "error" in line.lower()]
    forbidden = sum(1 for line in errors if "403" in line)
    return LogScanResult(error_lines=errors, forbidden_count=forbidden)


def scan_error_lines(ctx: ServiceContext) -> LogScanResult | None:
    """Scan the container's recent logs for errors.

    Returns:
        Scan result, or None if the container is not running
    """
    container = ctx.service.container_name
    if ctx.runtime.status(container) != ContainerStatus.RUNNING:
        ctx.log.warning("Cannot check logs - container %s is not running", container)
        return None

    ctx.log.debug("Checking container logs for errors")
    result = scan_log_text(ctx.runtime.tail_logs(container, ctx.service.log_tail_lines))

    if not result.error_lines:
        ctx.log.debug("No errors found in recent container logs")
        return result

    ctx.log.warning("Found %d error lines in the last %d log lines", result.error_count, ctx.service.log_tail_lines)
    for i, line in enumerate(result.error_lines[:LOG_SAMPLE_LINES], start=1):
        ctx.log.warning("[%d] %s", i, line.strip())

    if result.forbidden_count:
        ctx.log.warning(
            "Found %d '403 Forbidden' errors - check directory permissions and index files",
            result.forbidden_count,
        )

    return result


def skip(ctx: ServiceContext) -> None:
    """No-op capability."""
    return None


def no_scan(ctx: ServiceContext) -> LogScanResult | None:
    """Log scanning is not defined for this service type."""
    return None
