"""Default policy for custom service types without a registered handler.

Both ``validation_command`` and ``restart_command`` are mandatory.
"""

from config_watcher.errors import RestartFailed, ValidationFailed
from config_watcher.policies.base import (
    ServiceContext,
    no_scan,
    run_restart_command,
    run_validation_command,
    skip,
)


def requirements(ctx: ServiceContext) -> list[str]:
    """Missing settings that prevent this service from being reconciled."""
    missing = []
    if not ctx.service.validation_command:
        missing.append("validation_command")
    if not ctx.service.restart_command:
        missing.append("restart_command")
    return missing


def validate(ctx: ServiceContext) -> None:
    if not ctx.service.validation_command:
        raise ValidationFailed(f"Custom service type '{ctx.service.type_tag}' requires validation_command")
    run_validation_command(ctx)


def restart(ctx: ServiceContext) -> None:
    if not ctx.service.restart_command:
        raise RestartFailed(f"Custom service type '{ctx.service.type_tag}' requires restart_command")
    run_restart_command(ctx)


fix_issues = skip
scan_logs = no_scan
