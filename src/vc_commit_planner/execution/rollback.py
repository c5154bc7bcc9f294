"""
Compensating rollback of commits created during a failed plan execution.

Two strategies exist:

``reset``
    ``git reset --hard HEAD~N`` (``--soft`` when the working tree is to be
    preserved) discards the N commits of the run.
``revert``
    ``git revert --no-edit`` of each commit, most recent first, adds
    inverse commits and keeps history.

When the chosen strategy fails the other one is tried exactly once,
preserving the working tree. When that fails too, commits are reset one
at a time until the first failure and a :class:`ManualRollbackPlan`
describes whatever is left.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from vc_commit_planner.execution.results import (
    AppliedCommit,
    CommitUndo,
    ManualRollbackPlan,
    RollbackRecord,
)
from vc_commit_planner.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


ROLLBACK_STRATEGIES = ("reset", "revert")


class _StrategyFailed(Exception):
    """A rollback strategy failed; ``extra_commits`` revert commits were left on top."""

    def __init__(self, message: str, extra_commits: int = 0) -> None:
        super().__init__(message)
        self.extra_commits = extra_commits


class RollbackExecutor:
    """Undo the commits of a run against a :class:`GitClient`."""

    def __init__(self, git: GitClient) -> None:
        self.git = git

    def rollback(
        self,
        commits: Sequence[AppliedCommit],
        strategy: str = "reset",
        preserve_working_tree: bool = False,
        reason: str = "",
    ) -> RollbackRecord:
        """Undo ``commits`` (oldest first) and report what happened.

        Raises
        ------
        ValueError
            If ``strategy`` is neither ``reset`` nor ``revert``.
        """
        if strategy not in ROLLBACK_STRATEGIES:
            raise ValueError(f"Unknown rollback strategy: {strategy}")
        commits = list(commits)
        if not commits:
            return RollbackRecord(success=True, strategy=strategy, message="No commits to rollback")

        try:
            self.git.unstage_all()
        except GitError as exc:
            logger.warning("Could not clear the staging area before rollback: %s", exc)
        pre_head = self._current_head()

        try:
            outcomes = self._apply(strategy, commits, preserve_working_tree)
        except _StrategyFailed as primary:
            logger.warning("Rollback with '%s' failed: %s", strategy, primary)
            return self._recover(commits, strategy, pre_head, primary)

        message = f"Rolled back {len(commits)} commits using {strategy} strategy"
        if reason:
            message = f"{message} due to failure: {reason}"
        logger.warning(message)
        return RollbackRecord(
            success=True,
            strategy=strategy,
            pre_rollback_head=pre_head,
            commits_rolled_back=len(commits),
            outcomes=outcomes,
            message=message,
        )

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------
    def _apply(
        self, strategy: str, commits: List[AppliedCommit], preserve: bool, extra_commits: int = 0
    ) -> List[CommitUndo]:
        if strategy == "reset":
            return self._reset(commits, preserve, extra_commits)
        return self._revert(commits)

    def _reset(self, commits: List[AppliedCommit], preserve: bool, extra_commits: int) -> List[CommitUndo]:
        depth = len(commits) + extra_commits
        try:
            self.git.reset(f"HEAD~{depth}", mode="soft" if preserve else "hard")
        except GitError as exc:
            raise _StrategyFailed(f"Reset rollback failed: {exc}") from exc
        return [CommitUndo(commit_hash=commit.commit_hash, undone=True) for commit in reversed(commits)]

    def _revert(self, commits: List[AppliedCommit]) -> List[CommitUndo]:
        outcomes: List[CommitUndo] = []
        for commit in reversed(commits):
            try:
                revert_hash = self.git.revert(commit.commit_hash)
            except GitError as exc:
                try:
                    self.git.revert_abort()
                except GitError as abort_exc:
                    logger.warning("Failed to abort revert of %s: %s", commit.commit_hash, abort_exc)
                raise _StrategyFailed(
                    f"Revert of {commit.commit_hash} failed: {exc}", extra_commits=len(outcomes)
                ) from exc
            outcomes.append(CommitUndo(commit_hash=commit.commit_hash, undone=True, revert_commit=revert_hash))
        return outcomes

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    def _recover(
        self,
        commits: List[AppliedCommit],
        strategy: str,
        pre_head: Optional[str],
        primary: _StrategyFailed,
    ) -> RollbackRecord:
        alternative = "revert" if strategy == "reset" else "reset"
        extra = primary.extra_commits
        logger.warning("Trying alternative rollback strategy: %s", alternative)
        try:
            outcomes = self._apply(alternative, commits, preserve=True, extra_commits=extra)
        except _StrategyFailed as secondary:
            logger.warning("Alternative rollback with '%s' failed: %s", alternative, secondary)
            extra += secondary.extra_commits
            return self._partial(commits, strategy, pre_head, extra, f"{primary}; {secondary}")

        return RollbackRecord(
            success=True,
            strategy=alternative,
            pre_rollback_head=pre_head,
            commits_rolled_back=len(commits),
            outcomes=outcomes,
            message=f"Rolled back {len(commits)} commits using {alternative} strategy after {strategy} failed",
            fallback_used=alternative,
        )

    def _partial(
        self,
        commits: List[AppliedCommit],
        strategy: str,
        pre_head: Optional[str],
        extra_commits: int,
        error: str,
    ) -> RollbackRecord:
        """Reset one commit at a time until the first failure."""
        total = len(commits) + extra_commits
        steps = 0
        step_error: Optional[str] = None
        for _ in range(total):
            try:
                self.git.reset("HEAD~1", mode="hard")
            except GitError as exc:
                step_error = str(exc)
                break
            steps += 1

        # Revert commits left by failed strategies sit on top and go first.
        undone = max(0, steps - extra_commits)
        kept = commits[: len(commits) - undone]
        outcomes = [CommitUndo(commit_hash=c.commit_hash, undone=True) for c in reversed(commits[len(kept):])]
        outcomes.extend(CommitUndo(commit_hash=c.commit_hash, undone=False, error=step_error) for c in reversed(kept))

        if steps == total:
            message = f"Partial recovery rolled back all {len(commits)} commits one at a time"
            logger.warning(message)
            return RollbackRecord(
                success=True,
                strategy=strategy,
                pre_rollback_head=pre_head,
                commits_rolled_back=undone,
                outcomes=outcomes,
                message=message,
                error=error,
                partial=True,
                fallback_used="partial",
            )

        manual_plan = ManualRollbackPlan.for_commits(kept, reset_depth=total - steps)
        if steps == 0:
            message = "Critical: failed to rollback commits automatically. Manual intervention required."
        else:
            message = f"Partial recovery: rolled back {undone} of {len(commits)} commits"
        logger.error("%s Error: %s", message, error)
        return RollbackRecord(
            success=False,
            strategy=strategy,
            pre_rollback_head=pre_head,
            commits_rolled_back=undone,
            outcomes=outcomes,
            message=message,
            error=error if step_error is None else f"{error}; {step_error}",
            partial=steps > 0,
            fallback_used="partial",
            manual_plan=manual_plan,
        )

    def _current_head(self) -> Optional[str]:
        try:
            return self.git.head()
        except GitError as exc:
            logger.warning("Could not read HEAD before rollback: %s", exc)
            return None
