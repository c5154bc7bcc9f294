"""
Result objects returned by plan execution and rollback.

Every failure path of the orchestrator ends in one of these objects rather
than an exception, so callers can always inspect what happened and what
an operator should do next.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vc_commit_planner.execution.errors import ErrorClassification


@dataclass
class RecoveryOutcome:
    """What automatic recovery did for a failed group."""

    action: str  # "skip_commit" or "partial_commit"
    success: bool
    message: str
    committed_files: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    commit_hash: Optional[str] = None


@dataclass
class FailureMetadata:
    """Structured context attached to a failed or recovered commit result.

    ``commit_index`` is 1-based; ``successful_commits`` counts the commits
    made earlier in the same run.
    """

    classification: Optional[ErrorClassification]
    original_error: str
    commit_index: int
    total_commits: int
    successful_commits: int
    remaining_commits: int
    suggested_actions: List[str] = field(default_factory=list)
    recovery_action: str = ""
    auto_recovery_attempted: bool = False
    recovery: Optional[RecoveryOutcome] = None
    rollback_recommended: bool = False
    critical_failure: bool = False
    recovery_error: Optional[str] = None


@dataclass
class CommitResult:
    """Outcome of committing one group.

    A group skipped or narrowed by automatic recovery is a success with
    ``skipped`` or ``partial`` set; ``commit_hash`` is None whenever no
    commit was created.
    """

    success: bool
    message: str = ""
    commit_hash: Optional[str] = None
    files: List[str] = field(default_factory=list)
    group_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
    partial: bool = False
    attempts: int = 0
    metadata: Optional[FailureMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "success": self.success,
            "commit_hash": self.commit_hash,
            "message": self.message,
            "files": list(self.files),
            "error": self.error,
            "skipped": self.skipped,
            "partial": self.partial,
            "attempts": self.attempts,
        }


@dataclass
class AppliedCommit:
    """A commit created during the current run, in creation order."""

    commit_hash: str
    group_id: str
    message: str
    files: List[str] = field(default_factory=list)


@dataclass
class CommitUndo:
    """Per-commit outcome of a rollback."""

    commit_hash: str
    undone: bool
    revert_commit: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ManualRollbackPlan:
    """Instructions for undoing commits that automatic rollback could not."""

    commits: List[AppliedCommit]
    commands: List[str]
    instructions: List[str]

    @classmethod
    def for_commits(cls, commits: List[AppliedCommit], reset_depth: Optional[int] = None) -> "ManualRollbackPlan":
        """Build a plan for ``commits`` (oldest first).

        ``reset_depth`` is how far ``HEAD`` must move back; it exceeds
        ``len(commits)`` when revert commits were left on top.
        """
        depth = len(commits) if reset_depth is None else reset_depth
        commands = [f"git reset --hard HEAD~{depth}"]
        instructions = [
            f"Run: git reset --hard HEAD~{depth}",
            f"This will undo the last {depth} commits",
            "All uncommitted changes will be lost, make sure this is what you want",
            "Alternative: use git revert for each commit hash listed, most recent first",
        ]
        return cls(commits=list(commits), commands=commands, instructions=instructions)

    def revert_commands(self) -> List[str]:
        return [f"git revert --no-edit {commit.commit_hash}" for commit in reversed(self.commits)]

    def script(self) -> str:
        """Render the plan as a shell script an operator can review and run."""
        lines = ["#!/bin/sh", "# Manual rollback of commits created by commitplan", "set -e", ""]
        for commit in reversed(self.commits):
            subject = commit.message.splitlines()[0] if commit.message else ""
            lines.append(f"# {commit.commit_hash} {subject}".rstrip())
            for path in commit.files:
                lines.append(f"#   {path}")
        lines.append("")
        lines.extend(self.commands)
        lines.append("")
        lines.append("# Alternative that keeps history:")
        lines.extend(f"# {command}" for command in self.revert_commands())
        return "\n".join(lines) + "\n"


@dataclass
class RollbackRecord:
    """Outcome of rolling back the commits of a failed run."""

    success: bool
    strategy: str
    pre_rollback_head: Optional[str] = None
    commits_rolled_back: int = 0
    outcomes: List[CommitUndo] = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None
    partial: bool = False
    fallback_used: Optional[str] = None
    manual_plan: Optional[ManualRollbackPlan] = None


@dataclass
class ExecutionReport:
    """Everything :meth:`CommitOrchestrator.execute_plan` did."""

    results: List[CommitResult] = field(default_factory=list)
    rollback: Optional[RollbackRecord] = None
    pre_run_head: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results) and not self.cancelled

    @property
    def committed(self) -> List[CommitResult]:
        return [result for result in self.results if result.commit_hash]


@dataclass
class OrchestratorStats:
    total_commits: int = 0
    successful_commits: int = 0
    failed_commits: int = 0
    retries: int = 0
    files_staged: int = 0

    @property
    def success_rate(self) -> float:
        return self.successful_commits / self.total_commits if self.total_commits else 0.0
