"""Apache service policy."""

from config_watcher.policies.base import (
    ServiceContext,
    run_validation_command,
    runtime_restart,
    scan_error_lines,
    skip,
)


def validate(ctx: ServiceContext) -> None:
    if not ctx.service.validation_command:
        ctx.log.debug("No validation command configured, skipping validation")
        return
    run_validation_command(ctx)


fix_issues = skip
restart = runtime_restart
scan_logs = scan_error_lines
