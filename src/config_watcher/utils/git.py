"""Git worktree operations for a single (path, url, branch) binding."""

import logging
import shutil
import subprocess
from pathlib import Path

from config_watcher.errors import (
    BranchMissing,
    CloneFailed,
    CommandFailed,
    FetchFailed,
    GitError,
    MergeConflict,
    PullFailed,
    ResetFailed,
    ToolMissing,
)
from config_watcher.utils.cmd import run_cmd, tail_text

logger = logging.getLogger("config_watcher.git")

CONFLICT_MARKERS = ("CONFLICT", "Automatic merge failed")


def ssh_command_env(key_path: Path | None) -> dict[str, str]:
    """Environment forcing git to use one key file without prompting."""
    env = {"GIT_TERMINAL_PROMPT": "0"}
    if key_path is not None:
        env["GIT_SSH_COMMAND"] = (
            f"ssh -i {key_path} -o IdentitiesOnly=yes -o BatchMode=yes -o StrictHostKeyChecking=yes"
        )
    return env


def _output(result: subprocess.CompletedProcess[str]) -> str:
    return f"{result.stdout}\n{result.stderr}"


class GitWorktree:
    """Local clone of one branch of a remote repository."""

    def __init__(
        self,
        path: Path,
        url: str,
        branch: str,
        ssh_key: Path | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.path = Path(path)
        self.url = url
        self.branch = branch
        self.ssh_key = ssh_key
        self.log = log or logger
        self._env = ssh_command_env(ssh_key)

    def _git(
        self,
        *args: str,
        error: type[GitError] = GitError,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run git, mapping timeouts and a missing binary to ``error``."""
        try:
            return run_cmd(["git", *args], cwd=cwd or self.path, env=self._env)
        except (CommandFailed, ToolMissing) as e:
            raise error(f"git {args[0]}: {e.message}") from e

    def _git_checked(self, *args: str, error: type[GitError] = GitError) -> str:
        result = self._git(*args, error=error)
        if result.returncode != 0:
            raise error(f"git {' '.join(args)} failed: {tail_text(result.stderr or result.stdout)}")
        return result.stdout.strip()

    # Queries

    def is_worktree(self) -> bool:
        return (self.path / ".git").exists()

    def head_hash(self) -> str:
        return self._git_checked("rev-parse", "HEAD")

    def remote_hash(self, ref: str | None = None) -> str:
        ref = ref or f"origin/{self.branch}"
        return self._git_checked("rev-parse", ref, error=FetchFailed)

    def current_branch(self) -> str:
        return self._git_checked("rev-parse", "--abbrev-ref", "HEAD")

    def has_local_changes(self) -> bool:
        return bool(self._git_checked("status", "--porcelain"))

    def _local_branch_exists(self, branch: str) -> bool:
        result = self._git("show-ref", "--verify", "--quiet", f"refs/heads/{branch}")
        return result.returncode == 0

    # Mutations

    def ensure(self) -> bool:
        """Update an existing worktree or clone a fresh one.

        Returns:
            True if the worktree changed (fresh clone or new commits pulled)
        """
        if self.is_worktree():
            self.log.info("Git repository already exists at %s", self.path)
            return self.update()

        if self.path.exists():
            backup = self.path.with_name(self.path.name + ".bak")
            self.log.warning("Directory %s exists but is not a git repository, moving it to %s", self.path, backup)
            try:
                if backup.is_dir() and not backup.is_symlink():
                    shutil.rmtree(backup)
                elif backup.exists() or backup.is_symlink():
                    backup.unlink()
                self.path.rename(backup)
            except OSError as e:
                raise CloneFailed(f"Failed to back up {self.path}: {e}") from e

        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CloneFailed(f"Failed to create {self.path}: {e}") from e

        self.clone()
        return True

    def clone(self) -> None:
        """Shallow clone of the configured branch into ``path``."""
        self.log.info("Cloning repository %s (branch %s) to %s", self.url, self.branch, self.path)
        result = self._git(
            "clone",
            "--depth",
            "1",
            "--branch",
            self.branch,
            self.url,
            str(self.path),
            error=CloneFailed,
            cwd=self.path.parent,
        )
        if result.returncode != 0:
            raise CloneFailed(f"Failed to clone {self.url}: {tail_text(result.stderr)}")
        self.log.info("Repository cloned successfully. Current commit: %s", self.head_hash())

    def _refspec(self) -> str:
        return f"+refs/heads/{self.branch}:refs/remotes/origin/{self.branch}"

    def fetch(self) -> None:
        result = self._git("fetch", "origin", self._refspec(), error=FetchFailed)
        if result.returncode != 0:
            raise FetchFailed(f"Failed to fetch {self.branch}: {tail_text(result.stderr)}")

    def _stash(self, reason: str) -> bool:
        result = self._git("stash", "push", "-m", reason)
        if result.returncode != 0:
            self.log.warning("Failed to stash local changes: %s", tail_text(result.stderr))
            return False
        return "No local changes" not in result.stdout

    def _stash_pop(self) -> None:
        self.log.info("Applying stashed changes")
        result = self._git("stash", "pop")
        if result.returncode != 0:
            self.log.warning("Failed to apply stashed changes: %s", tail_text(_output(result)))

    def switch_branch(self) -> None:
        """Check out the configured branch, creating it from origin if needed."""
        if self.has_local_changes():
            self.log.warning("Found uncommitted changes, stashing them before branch switch")
            self._stash("Auto-stash before branch switch")

        if self._local_branch_exists(self.branch):
            self._git_checked("checkout", self.branch, error=BranchMissing)
            return

        result = self._git("fetch", "origin", self._refspec(), error=FetchFailed)
        if result.returncode != 0:
            raise BranchMissing(f"Branch {self.branch} not found on remote: {tail_text(result.stderr)}")

        self._git_checked("checkout", "-b", self.branch, f"origin/{self.branch}", error=BranchMissing)

    def update(self) -> bool:
        """Switch to the tracked branch if needed, then pull new commits.

        Returns:
            True iff a new commit was pulled

        Raises:
            MergeConflict: If the pull conflicted (HEAD is reset to the pre-pull commit)
        """
        current = self.current_branch()
        if current != self.branch:
            self.log.warning("Switching from branch %s to %s", current, self.branch)
            self.switch_branch()

        self.fetch()

        previous = self.head_hash()
        remote = self.remote_hash()
        self.log.debug("Local commit: %s, remote commit: %s", previous, remote)

        if remote == previous:
            self.log.debug("No changes detected")
            return False

        self.log.info("Changes detected, pulling latest code")

        stashed = False
        if self.has_local_changes():
            self.log.warning("Local uncommitted changes detected, stashing them")
            stashed = self._stash("Auto-stash before pull")

        result = self._git("pull", "--no-rebase", "origin", self.branch, error=PullFailed)
        if result.returncode != 0:
            output = _output(result)
            if any(marker in output for marker in CONFLICT_MARKERS):
                self.log.error("Merge conflicts detected, reverting to %s", previous)
                self.reset_hard(previous)
                if stashed:
                    self._stash_pop()
                raise MergeConflict(f"Merge conflicts pulling {self.branch}, reset to {previous}")
            if stashed:
                self._stash_pop()
            raise PullFailed(f"Failed to pull {self.branch}: {tail_text(output)}")

        if stashed:
            self._stash_pop()

        current_commit = self.head_hash()
        if current_commit == previous:
            self.log.debug("Pull left HEAD unchanged at %s", previous)
            return False

        self.log.info("Updated from %s to %s", previous[:12], current_commit[:12])
        return True

    def check_and_pull(self) -> bool:
        """Returns True iff a new commit was pulled."""
        return self.update()

    def reset_hard(self, ref: str) -> None:
        result = self._git("reset", "--hard", ref, error=ResetFailed)
        if result.returncode != 0:
            raise ResetFailed(f"Failed to reset to {ref}: {tail_text(result.stderr)}")

    def revert_last(self) -> None:
        """Move HEAD back to its previous reflog position."""
        self.log.warning("Reverting to previous commit")
        self.reset_hard("HEAD@{1}")
