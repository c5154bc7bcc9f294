"""
Git client implementation for vc_commit_planner.

This module wraps the Git operations the orchestrator needs to execute a
commit plan: status, staging and unstaging, committing, reading ``HEAD``
and the log, and undoing commits with ``reset`` or ``revert``. All
subprocess calls go through :meth:`GitClient._run` so that unit tests can
mock a single method.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs propagate to the root when configured by the CLI.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


@dataclass
class FileChange:
    """Representation of a single file change in the repository."""

    path: str
    status: str  # e.g. 'M' modified, 'A' added, 'D' deleted, 'R' renamed, '?' untracked


class GitError(Exception):
    """Raised when a Git command fails."""

    pass


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def is_repo(path: Path) -> bool:
        """Return True if the given path is inside a Git repository."""
        return (path / ".git").exists()

    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` directory is found or the filesystem
        root is reached.
        """
        current = start.resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                # reached filesystem root
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Basic Git commands
    # ------------------------------------------------------------------
    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        GitError
            If the command exits with a non-zero status when ``check`` is True.
        """
        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd))
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",  # Replace invalid characters instead of failing
            )
        except OSError as e:
            logger.error("Failed to start Git: %s", e)
            raise GitError(f"Failed to run git: {e}") from e

        if check and result.returncode != 0:
            logger.debug(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd),
                result.stdout,
                result.stderr,
            )
            raise GitError(result.stderr.strip() or result.stdout.strip())
        return result

    # ------------------------------------------------------------------
    # Status and change detection
    # ------------------------------------------------------------------
    def get_changes(self, include_untracked: bool = False) -> List[FileChange]:
        """Get the list of changed files in the repository.

        Untracked files (status ``??``) are excluded unless
        ``include_untracked`` is set. For renamed files only the new path
        is reported.

        Raises
        ------
        GitError
            If the git status command fails.
        """
        args = ["status", "--porcelain"]
        if include_untracked:
            args.append("--untracked-files=all")
        result = self._run(args, check=True)
        changes = []

        for line in result.stdout.splitlines():
            # Git porcelain format: XY filename
            if len(line) < 4 or not line.strip():
                continue

            status_code = line[:2]
            filename = line[3:]

            if status_code == "??":
                if include_untracked:
                    changes.append(FileChange(path=filename, status="?"))
                continue

            status = status_code.strip()
            if not status:
                continue
            primary_status = status[0]

            if primary_status == "R" and " -> " in filename:
                filename = filename.split(" -> ", 1)[1]
            changes.append(FileChange(path=filename, status=primary_status))

        return changes

    def known_paths(self) -> Set[str]:
        """Paths git currently reports as changed, staged or untracked."""
        return {change.path for change in self.get_changes(include_untracked=True)}

    def staged_files(self) -> List[str]:
        result = self._run(["diff", "--cached", "--name-only"], check=True)
        return [line for line in result.stdout.splitlines() if line.strip()]

    def has_staged_changes(self) -> bool:
        return bool(self.staged_files())

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def head(self) -> str:
        """Return the full hash of ``HEAD``.

        Raises
        ------
        GitError
            If the repository has no commits or is not a repository.
        """
        result = self._run(["rev-parse", "HEAD"], check=True)
        return result.stdout.strip()

    def log(self, count: int = 1) -> List[Tuple[str, str]]:
        """Return ``(hash, subject)`` pairs for the latest ``count`` commits."""
        result = self._run(["log", f"-n{count}", "--format=%H%x09%s"], check=True)
        entries = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            commit_hash, _, subject = line.partition("\t")
            entries.append((commit_hash, subject))
        return entries

    # ------------------------------------------------------------------
    # Staging and committing
    # ------------------------------------------------------------------
    def stage_files(self, files: Sequence[str]) -> None:
        """Stage the given paths, including deletions, in one ``git add`` call."""
        if not files:
            return
        self._run(["add", "-A", "--"] + list(files), check=True)

    def unstage_files(self, files: Sequence[str]) -> None:
        """Remove the given paths from the index, keeping working tree changes."""
        if not files:
            return
        self._run(["reset", "-q", "--"] + list(files), check=True)

    def unstage_all(self) -> None:
        self._run(["reset", "-q"], check=True)

    def commit(self, message: str) -> str:
        """Create a commit with the given message and return its hash.

        Multi-line commit messages are supported. If the commit fails,
        a GitError is raised.
        """
        self._run(["commit", "-m", message], check=True)
        return self.head()

    # ------------------------------------------------------------------
    # Undoing commits
    # ------------------------------------------------------------------
    def reset(self, target: str, mode: str = "hard") -> None:
        """Move ``HEAD`` to ``target`` with ``git reset --<mode>``."""
        if mode not in ("soft", "mixed", "hard"):
            raise ValueError(f"Unsupported reset mode: {mode}")
        self._run(["reset", f"--{mode}", target], check=True)

    def revert(self, commit_hash: str) -> str:
        """Create a commit that reverts ``commit_hash`` and return its hash."""
        self._run(["revert", "--no-edit", commit_hash], check=True)
        return self.head()

    def revert_abort(self) -> None:
        """Abandon an in-progress revert; a no-op when none is in progress."""
        self._run(["revert", "--abort"], check=False)
