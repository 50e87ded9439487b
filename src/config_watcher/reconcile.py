"""Per-service reconciliation loop.

Each loop owns one service and walks it through
``Init -> Grace -> Idle -> Fetching -> Validating -> Applying -> Observing -> Idle``,
branching to ``Recovering`` on failures after a pull and to ``Aborted`` when
the service cannot be started. Phases run strictly in sequence; shutdown is
observed between phases and during every wait.
"""

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from config_watcher.errors import (
    GitError,
    MergeConflict,
    PermissionFailed,
    WatcherError,
)
from config_watcher.log import service_logger
from config_watcher.model.service import ServiceConfig, ServiceKind
from config_watcher.model.settings import GlobalSettings
from config_watcher.model.state import Phase, ReconciliationState
from config_watcher.policies import ServiceContext, ServicePolicy, get_policy
from config_watcher.utils.docker import DockerRuntime
from config_watcher.utils.git import GitWorktree
from config_watcher.utils.healthcheck import notify
from config_watcher.utils.permissions import fix_container_permissions, fix_host_permissions

Notifier = Callable[[str | None, str, bool], object]


class ReconciliationLoop:
    """Keeps one service in sync with its Git repository."""

    def __init__(
        self,
        service: ServiceConfig,
        settings: GlobalSettings,
        *,
        shutdown: threading.Event,
        runtime: DockerRuntime | None = None,
        git: GitWorktree | None = None,
        policy: ServicePolicy | None = None,
        notifier: Notifier = notify,
        ssh_key: Path | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.service = service
        self.settings = settings
        self.shutdown = shutdown
        self.log = log or service_logger(service.name)
        self.runtime = runtime or DockerRuntime()
        self.git = git or GitWorktree(
            service.local_path,
            service.repo_url,
            service.effective_branch(settings),
            ssh_key=ssh_key,
            log=self.log,
        )
        self.policy = policy or get_policy(service.service_type)
        self.notifier = notifier
        self.state = ReconciliationState()
        self.ctx = ServiceContext(service, settings, self.runtime, self.log)
        # Commit to roll back to when the first cycle applies commits pulled by ensure()
        self._pending_base: str | None = None

    # Effective options

    @property
    def auto_fix(self) -> bool:
        return self.service.effective_auto_fix(self.settings)

    @property
    def fix_permissions(self) -> bool:
        return self.service.effective_fix_permissions(self.settings)

    @property
    def monitor_logs(self) -> bool:
        return self.service.effective_monitor_logs(self.settings)

    @property
    def disable_restart(self) -> bool:
        return self.service.effective_disable_restart(self.settings)

    # Helpers

    def _set_phase(self, phase: Phase) -> None:
        self.state.phase = phase
        self.state.last_event_ts = time.time()
        self.log.debug("Phase: %s", phase.value)

    def _notify(self, message: str, is_error: bool = False) -> None:
        self.notifier(self.service.healthcheck_url, f"[{self.service.name}] {message}", is_error)

    def _fail(self, message: str) -> None:
        """Record a failed cycle and surface it on the /fail endpoint."""
        self.state.consecutive_failures += 1
        self.state.last_error = message
        self.log.warning(
            "Update cycle failed (%d consecutive): %s. Will retry next interval",
            self.state.consecutive_failures,
            message,
        )
        self._notify(f"Error: {message}", is_error=True)

    def _refresh_commit(self) -> None:
        try:
            self.state.current_commit = self.git.head_hash()
        except GitError as e:
            self.log.error("Cannot read HEAD: %s", e.message)

    def _revert_to(self, target: str | None) -> None:
        """Bring HEAD back to ``target``: reflog step first, hard reset as fallback."""
        if target is None:
            self.log.warning("No previous commit recorded, cannot roll back")
            return
        try:
            if self.git.head_hash() != target:
                self.git.revert_last()
                if self.git.head_hash() != target:
                    self.git.reset_hard(target)
            self.log.info("Worktree rolled back to %s", target[:12])
        except GitError as e:
            self.log.error("Rollback to %s failed: %s", target[:12], e.message)
        self._refresh_commit()

    def _recover(self, pre_fetch: str | None, error: WatcherError) -> None:
        self._set_phase(Phase.RECOVERING)
        self.log.error("%s", error.message)
        self._revert_to(pre_fetch)
        self._fail(error.message)

    def _abort(self, reason: str) -> Phase:
        self._set_phase(Phase.ABORTED)
        self.state.last_error = reason
        self.log.error("Reconciliation aborted: %s", reason)
        self._notify(f"Aborted: {reason}", is_error=True)
        return Phase.ABORTED

    def _stopping(self) -> bool:
        return self.shutdown.is_set()

    # Startup

    def startup_problems(self) -> list[str]:
        """Reasons this service cannot be reconciled, empty if it can."""
        problems = []
        if not self.service.restart_target_defined(self.settings):
            problems.append("no restart target: set restart_command, docker_compose_dir or a default compose dir")
        if self.policy.requirements is not None:
            for missing in self.policy.requirements(self.ctx):
                problems.append(f"{missing} is required for service type '{self.service.type_tag}'")
        return problems

    def _start_worktree(self) -> None:
        """Clone or update the worktree and record its HEAD."""
        existed = self.git.is_worktree()
        before = self.git.head_hash() if existed else None

        changed = self.git.ensure()
        self.state.current_commit = self.git.head_hash()
        self.log.info("Current commit: %s", self.state.current_commit)

        if existed and changed:
            # Commits pulled during startup still go through validate/apply
            self._pending_base = before

    def run(self) -> Phase:
        """Run until shutdown or abort.

        Returns:
            The terminal phase: ABORTED or STOPPED
        """
        self._set_phase(Phase.INIT)

        problems = self.startup_problems()
        if problems:
            return self._abort("; ".join(problems))

        self._set_phase(Phase.GRACE)
        grace = self.settings.grace_seconds
        if grace:
            self.log.info("Waiting %ss startup grace period", grace)
            if self.shutdown.wait(grace):
                return self.stop()

        self._set_phase(Phase.IDLE)
        try:
            self._start_worktree()
        except WatcherError as e:
            return self._abort(e.message)

        self.log.info(
            "Monitoring %s (branch %s) every %ss",
            self.service.repo_url,
            self.git.branch,
            self.settings.watch_interval,
        )
        self._notify("Monitoring started")

        while not self._stopping():
            try:
                self.run_cycle()
            except Exception as e:
                self.log.exception("Unexpected error during reconciliation cycle")
                self._fail(f"Unexpected error: {e}")

            self._set_phase(Phase.IDLE)
            if self.shutdown.wait(self.settings.watch_interval):
                break

        return self.stop()

    def stop(self) -> Phase:
        self._set_phase(Phase.STOPPED)
        self.log.info("Reconciliation loop stopped")
        return Phase.STOPPED

    # Cycle

    def run_cycle(self) -> bool:
        """Run one Fetching -> (Validating -> Applying ->) Observing cycle.

        Returns:
            True if the cycle completed without failure
        """
        pre_fetch = self._pending_base or self.state.current_commit

        self._set_phase(Phase.FETCHING)
        try:
            changed = self.git.check_and_pull()
        except MergeConflict as e:
            self._pending_base = None
            self._refresh_commit()
            self._recover(pre_fetch, e)
            return False
        except GitError as e:
            self._refresh_commit()
            self._fail(e.message)
            return False

        if self._pending_base is not None:
            changed = True
            self._pending_base = None

        self._refresh_commit()

        if not changed:
            self._observe()
            return True

        self.log.info("New commit %s", (self.state.current_commit or "")[:12])

        if self._stopping():
            self.log.info("Shutdown requested before applying, rolling back pulled commits")
            self._revert_to(pre_fetch)
            return False

        self._set_phase(Phase.VALIDATING)
        try:
            self.policy.validate(self.ctx)
        except WatcherError as e:
            self.log.error("Validation failed: %s", e.message)
            if self.auto_fix:
                self._revert_to(pre_fetch)
            else:
                self.log.warning("Update not applied; worktree left at %s", (self.state.current_commit or "")[:12])
            self._fail(e.message)
            return False

        if self._stopping():
            self.log.info("Shutdown requested before applying, rolling back pulled commits")
            self._revert_to(pre_fetch)
            return False

        self._set_phase(Phase.APPLYING)
        try:
            self._apply()
        except (WatcherError, OSError) as e:
            error = e if isinstance(e, WatcherError) else WatcherError(str(e), code="APPLY_FAILED")
            self._recover(pre_fetch, error)
            return False

        if not self._stopping():
            self._observe()

        self.state.last_successful_commit = self.state.current_commit
        self.state.consecutive_failures = 0
        self.state.last_error = None
        self.log.info("Successfully applied %s", (self.state.current_commit or "")[:12])
        self._notify(f"Updated to {self.state.current_commit}")
        return True

    def _apply(self) -> None:
        if self.auto_fix:
            self.policy.fix_issues(self.ctx)

        if self.fix_permissions:
            self._fix_host_permissions()

        if self.disable_restart:
            self.log.info("Service restart is disabled by configuration. Skipping.")
        else:
            self.log.info("Restarting service")
            self.policy.restart(self.ctx)

        if self.fix_permissions and self.service.service_type == ServiceKind.NGINX:
            self._fix_container_permissions()

    def _fix_host_permissions(self) -> None:
        permissions = self.service.permissions
        if permissions is None:
            self.log.debug("No permissions policy configured, skipping host permission fix")
            return
        try:
            fix_host_permissions(self.service.local_path, permissions.user, permissions.group, log=self.log)
        except PermissionFailed as e:
            self.log.warning("Failed to fix permissions: %s", e.message)

    def _fix_container_permissions(self) -> None:
        permissions = self.service.permissions
        user = permissions.user if permissions else "nginx"
        group = permissions.group if permissions else "nginx"
        try:
            fix_container_permissions(
                self.runtime,
                self.service.container_name,
                user,
                group,
                self.service.web_root,
                log=self.log,
            )
        except WatcherError as e:
            self.log.warning("Failed to fix container permissions: %s", e.message)

    def _observe(self) -> None:
        if not self.monitor_logs:
            return
        self._set_phase(Phase.OBSERVING)
        try:
            self.policy.scan_logs(self.ctx)
        except WatcherError as e:
            self.log.warning("Failed to check container logs: %s", e.message)
