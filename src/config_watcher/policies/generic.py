"""Generic service policy: optional validation, runtime-appropriate restart."""

from config_watcher.policies.apache import validate
from config_watcher.policies.base import no_scan, runtime_restart, skip

__all__ = ["validate", "fix_issues", "restart", "scan_logs"]

fix_issues = skip
restart = runtime_restart
scan_logs = no_scan
