"""Error kinds raised by the watcher and its adapters."""


class WatcherError(Exception):
    """Watcher error with error code."""

    code = "WATCHER_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code}: {message}")


# Startup


class ConfigInvalid(WatcherError):
    code = "CONFIG_INVALID"


class LockfileHeld(WatcherError):
    code = "LOCKFILE_HELD"

    def __init__(self, message: str, pid: int | None = None) -> None:
        self.pid = pid
        super().__init__(message)


class DependencyMissing(WatcherError):
    code = "DEPENDENCY_MISSING"

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Required dependencies not found in PATH: {', '.join(missing)}")


# Commands


class CommandFailed(WatcherError):
    """A subprocess exited with a non-zero status."""

    code = "COMMAND_FAILED"

    def __init__(self, message: str, exit_code: int | None = None, stderr_tail: str = "") -> None:
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(message)


class CommandTimeout(CommandFailed):
    """A subprocess exceeded its deadline."""

    code = "TIMEOUT"

    def __init__(self, message: str, timeout: float | None = None) -> None:
        self.timeout = timeout
        super().__init__(message, exit_code=None)


class ToolMissing(WatcherError):
    code = "TOOL_MISSING"


# Git


class GitError(WatcherError):
    code = "GIT_ERROR"


class CloneFailed(GitError):
    code = "CLONE_FAILED"


class FetchFailed(GitError):
    code = "FETCH_FAILED"


class PullFailed(GitError):
    code = "PULL_FAILED"


class MergeConflict(GitError):
    code = "MERGE_CONFLICT"


class BranchMissing(GitError):
    code = "BRANCH_MISSING"


class ResetFailed(GitError):
    code = "RESET_FAILED"


# Container runtime


class RuntimeFailure(WatcherError):
    code = "RUNTIME_FAILURE"


class ContainerMissing(RuntimeFailure):
    code = "CONTAINER_MISSING"


class ComposeFileMissing(RuntimeFailure):
    code = "COMPOSE_FILE_MISSING"


# Cycle


class ValidationFailed(WatcherError):
    code = "VALIDATION_FAILED"


class RestartFailed(WatcherError):
    code = "RESTART_FAILED"


class PermissionFailed(WatcherError):
    code = "PERMISSION_FAILED"


class NotifyFailed(WatcherError):
    code = "NOTIFY_FAILED"
