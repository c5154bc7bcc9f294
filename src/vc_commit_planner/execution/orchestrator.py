"""
Transactional execution of a commit plan against git.

The :class:`CommitOrchestrator` commits groups strictly in plan order. For
each group it stages the group's paths, verifies something is staged and
commits, retrying transient failures with a fixed delay. A failed group is
unstaged, classified and, where possible, recovered automatically by
skipping it or committing only the paths git still knows about. An
unrecovered failure either rolls back the commits made in this run or,
with ``continue_on_error``, moves on to the next group.

Failures never escape as exceptions: every path ends in a
:class:`CommitResult` inside the returned :class:`ExecutionReport`, and the
staging area is left empty on every exit path.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from vc_commit_planner.config.settings import OrchestratorConfig
from vc_commit_planner.execution.backoff import Backoff
from vc_commit_planner.execution.errors import ErrorKind, ErrorSeverity, classify_error, is_retryable
from vc_commit_planner.execution.results import (
    AppliedCommit,
    CommitResult,
    ExecutionReport,
    FailureMetadata,
    OrchestratorStats,
    RecoveryOutcome,
    RollbackRecord,
)
from vc_commit_planner.execution.rollback import ROLLBACK_STRATEGIES, RollbackExecutor
from vc_commit_planner.grouping.group_model import CommitGroup, CommitPlan
from vc_commit_planner.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class OrchestrationState(str, Enum):
    IDLE = "idle"
    STAGING = "staging"
    COMMITTING = "committing"
    RECOVERING = "recovering"
    ROLLING_BACK = "rolling_back"


class CommitOrchestrator:
    """Execute commit plans against a :class:`GitClient`.

    Parameters
    ----------
    git : GitClient
        Client for the repository whose staging area and history the
        orchestrator owns for the duration of :meth:`execute_plan`.
    config : OrchestratorConfig, optional
        Retry, batching and rollback settings.
    backoff : Backoff, optional
        Delay between commit attempts; defaults to ``config.retry_delay``.
    """

    def __init__(
        self,
        git: GitClient,
        config: Optional[OrchestratorConfig] = None,
        backoff: Optional[Backoff] = None,
    ) -> None:
        self.git = git
        self.config = config or OrchestratorConfig()
        self.backoff = backoff or Backoff(self.config.retry_delay)
        self.rollback_executor = RollbackExecutor(git)
        self.state = OrchestrationState.IDLE
        self.stats = OrchestratorStats()
        self._staged: List[str] = []

    @property
    def staged_files(self) -> List[str]:
        return list(self._staged)

    # ------------------------------------------------------------------
    # Plan execution
    # ------------------------------------------------------------------
    def execute_plan(
        self,
        plan: CommitPlan,
        rollback_on_failure: bool = True,
        continue_on_error: bool = False,
        should_continue: Optional[Callable[[], bool]] = None,
        rollback_strategy: Optional[str] = None,
    ) -> ExecutionReport:
        """Commit every group of ``plan`` in order.

        Parameters
        ----------
        plan : CommitPlan
            The resolved plan.
        rollback_on_failure : bool
            Undo this run's commits when a group fails without recovery.
            The run always stops after a rollback.
        continue_on_error : bool
            Proceed to the next group after an unrecovered failure when no
            rollback happened.
        should_continue : Callable[[], bool], optional
            Consulted before each group; returning False stops the run.
        rollback_strategy : str, optional
            ``reset`` or ``revert``; defaults to the configured strategy.

        Raises
        ------
        ValueError
            If ``rollback_strategy`` is unknown.
        """
        strategy = rollback_strategy or self.config.rollback_strategy
        if strategy not in ROLLBACK_STRATEGIES:
            raise ValueError(f"Unknown rollback strategy: {strategy}")

        report = ExecutionReport()
        if not plan.groups:
            report.warnings.append("Commit plan has no groups; nothing to execute")
            return report

        report.pre_run_head = self._current_head()
        applied: List[AppliedCommit] = []
        try:
            try:
                self.git.unstage_all()
            except GitError as exc:
                logger.error("Failed to clear the staging area: %s", exc)
                report.results.append(
                    CommitResult(success=False, message="Plan execution failed", error=f"Failed to clear staging area: {exc}")
                )
                return report

            total = len(plan.groups)
            for index, group in enumerate(plan.groups):
                if should_continue is not None and not should_continue():
                    logger.info("Execution cancelled before group %s", group.id)
                    report.cancelled = True
                    report.warnings.append(f"Execution cancelled before group {group.id}")
                    break

                result = self._execute_group(group, index, total, applied)
                report.results.append(result)
                if result.success:
                    if result.commit_hash:
                        applied.append(
                            AppliedCommit(
                                commit_hash=result.commit_hash,
                                group_id=group.id,
                                message=result.message,
                                files=list(result.files),
                            )
                        )
                    continue

                if rollback_on_failure and applied:
                    report.rollback = self._rollback(applied, result, strategy, report)
                    break
                if not continue_on_error:
                    break
                logger.warning("Continuing after failed group %s", group.id)
        finally:
            self._clean_stage(report)
            self.state = OrchestrationState.IDLE
        return report

    def _execute_group(
        self, group: CommitGroup, index: int, total: int, applied: Sequence[AppliedCommit]
    ) -> CommitResult:
        paths = group.staged_paths()
        message = group.commit_message()
        logger.debug("Committing group %s (%d/%d): %s", group.id, index + 1, total, message.splitlines()[0])

        self.state = OrchestrationState.STAGING
        try:
            self.stage_files(paths)
        except GitError as exc:
            return self.handle_failure(group, str(exc), index, total, applied)

        self.state = OrchestrationState.COMMITTING
        result = self.create_commit(message)
        result.group_id = group.id
        if result.success:
            result.files = paths
            self._staged = []
            return result
        return self.handle_failure(group, result.error or "unknown error", index, total, applied, result.attempts)

    # ------------------------------------------------------------------
    # Staging and committing
    # ------------------------------------------------------------------
    def stage_files(self, paths: Sequence[str]) -> None:
        """Stage ``paths``, in batches of ``batch_size`` when above it.

        Raises
        ------
        GitError
            If staging fails; batches staged before the failure are
            unstaged again first.
        """
        paths = list(paths)
        if not paths:
            raise GitError("No files provided to stage")
        size = max(1, self.config.batch_size)
        batches = [paths[start:start + size] for start in range(0, len(paths), size)]
        staged: List[str] = []
        try:
            for batch in batches:
                self.git.stage_files(batch)
                staged.extend(batch)
        except GitError as exc:
            if staged:
                try:
                    self.git.unstage_files(staged)
                except GitError as unstage_exc:
                    logger.warning("Failed to unstage partially staged files: %s", unstage_exc)
            raise GitError(f"Staging operation failed: {exc}") from exc
        self._staged = paths
        self.stats.files_staged += len(paths)

    def create_commit(self, message: str) -> CommitResult:
        """Commit what is staged, retrying transient failures.

        At most ``max_retries`` attempts are made; an error that is not
        retryable ends the loop after the attempt that raised it.
        """
        message = message.strip()
        if not message:
            return CommitResult(success=False, error="Invalid commit message: message cannot be empty")

        max_attempts = max(1, self.config.max_retries)
        last_error = ""
        attempt = 0
        for attempt in range(1, max_attempts + 1):
            try:
                if not self.git.has_staged_changes():
                    self.stats.total_commits += 1
                    self.stats.failed_commits += 1
                    return CommitResult(
                        success=False,
                        message=message,
                        files=list(self._staged),
                        error="nothing to commit: no staged files found for commit",
                        attempts=attempt,
                    )
                commit_hash = self.git.commit(message)
            except GitError as exc:
                last_error = str(exc)
                if attempt < max_attempts and is_retryable(last_error):
                    self.stats.retries += 1
                    logger.warning(
                        "Commit attempt %d/%d failed, retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        self.backoff.delay_for(attempt),
                        last_error,
                    )
                    self.backoff.wait(attempt)
                    continue
                break
            self.stats.total_commits += 1
            self.stats.successful_commits += 1
            return CommitResult(
                success=True,
                message=message,
                commit_hash=commit_hash,
                files=list(self._staged),
                attempts=attempt,
            )

        self.stats.total_commits += 1
        self.stats.failed_commits += 1
        return CommitResult(
            success=False,
            message=message,
            files=list(self._staged),
            error=f"Commit creation failed after {attempt} attempt(s): {last_error}",
            attempts=attempt,
        )

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------
    def handle_failure(
        self,
        group: CommitGroup,
        error: str,
        index: int,
        total: int,
        applied: Sequence[AppliedCommit],
        attempts: int = 0,
    ) -> CommitResult:
        """Unstage, classify and try to recover a failed group."""
        self.state = OrchestrationState.RECOVERING
        paths = group.staged_paths()
        classification = classify_error(error)
        metadata = FailureMetadata(
            classification=classification,
            original_error=error,
            commit_index=index + 1,
            total_commits=total,
            successful_commits=len(applied),
            remaining_commits=total - index - 1,
            suggested_actions=list(classification.suggested_actions),
            recovery_action=classification.recovery_action,
            rollback_recommended=classification.severity == ErrorSeverity.CRITICAL and bool(applied),
        )
        failed = CommitResult(
            success=False,
            message=group.commit_message(),
            group_id=group.id,
            error=f"Commit {index + 1}/{total} failed: {error}",
            attempts=attempts,
            metadata=metadata,
        )

        try:
            self.git.unstage_files(paths)
        except GitError as exc:
            logger.error("Failed to unstage files of group %s: %s", group.id, exc)
            metadata.critical_failure = True
            metadata.recovery_error = str(exc)
            metadata.rollback_recommended = True
            failed.error = f"Commit failed and recovery failed: {error}. Recovery error: {exc}"
            return failed
        finally:
            self._staged = []

        logger.warning("Group %s failed (%s): %s", group.id, classification.kind.value, error)
        if not (self.config.auto_recovery and classification.auto_recoverable):
            return failed

        metadata.auto_recovery_attempted = True
        try:
            outcome = self._auto_recover(group, classification.kind)
        except GitError as exc:
            logger.warning("Auto-recovery of group %s failed: %s", group.id, exc)
            metadata.recovery_error = str(exc)
            return failed
        metadata.recovery = outcome
        if not outcome.success:
            return failed

        logger.warning("Recovered group %s: %s", group.id, outcome.message)
        return CommitResult(
            success=True,
            message=group.commit_message(),
            commit_hash=outcome.commit_hash,
            files=list(outcome.committed_files),
            group_id=group.id,
            skipped=outcome.action == "skip_commit",
            partial=outcome.action == "partial_commit",
            attempts=attempts,
            metadata=metadata,
        )

    def _auto_recover(self, group: CommitGroup, kind: ErrorKind) -> RecoveryOutcome:
        paths = group.staged_paths()
        if kind == ErrorKind.NO_CHANGES:
            return RecoveryOutcome(
                action="skip_commit",
                success=True,
                message="Skipped commit group with no changes",
                skipped_files=paths,
            )

        # A rename is reported under its new path only and stages with its old one.
        known = self.git.known_paths()
        valid = [record for record in group.files if record.path in known]
        invalid = [record.path for record in group.files if record.path not in known]
        staged: List[str] = []
        for record in valid:
            batch = record.staged_paths()
            try:
                self.git.stage_files(batch)
                staged.extend(batch)
            except GitError as exc:
                logger.warning("Failed to stage %s during auto-recovery: %s", record.path, exc)
        if not staged:
            return RecoveryOutcome(
                action="skip_commit",
                success=True,
                message="Skipped commit group - no valid files found",
                skipped_files=paths,
            )

        self._staged = staged
        self.state = OrchestrationState.COMMITTING
        result = self.create_commit(group.commit_message())
        self.state = OrchestrationState.RECOVERING
        skipped = invalid + [record.path for record in valid if record.path not in staged]
        if not result.success:
            try:
                self.git.unstage_files(staged)
            finally:
                self._staged = []
            return RecoveryOutcome(
                action="partial_commit",
                success=False,
                message=f"Partial commit failed: {result.error}",
                skipped_files=paths,
            )
        self._staged = []
        return RecoveryOutcome(
            action="partial_commit",
            success=True,
            message=f"Committed {len(staged)} of {len(paths)} files",
            committed_files=staged,
            skipped_files=skipped,
            commit_hash=result.commit_hash,
        )

    # ------------------------------------------------------------------
    # Rollback and cleanup
    # ------------------------------------------------------------------
    def _rollback(
        self, applied: List[AppliedCommit], failed: CommitResult, strategy: str, report: ExecutionReport
    ) -> RollbackRecord:
        self.state = OrchestrationState.ROLLING_BACK
        logger.warning("Rolling back %d commits using %s strategy", len(applied), strategy)
        record = self.rollback_executor.rollback(
            applied,
            strategy=strategy,
            preserve_working_tree=self.config.preserve_working_tree,
            reason=failed.error or "",
        )
        if not record.success:
            report.warnings.append(record.message)
            if failed.metadata is not None:
                failed.metadata.critical_failure = True
            return record

        if record.strategy == "reset" and report.pre_run_head:
            head = self._current_head()
            if head != report.pre_run_head:
                report.warnings.append(
                    f"HEAD after rollback is {head}, expected {report.pre_run_head}"
                )
        return record

    def _clean_stage(self, report: ExecutionReport) -> None:
        try:
            self.git.unstage_all()
        except GitError as exc:
            logger.error("Failed to leave the staging area clean: %s", exc)
            report.warnings.append(f"Failed to clear staging area: {exc}")
        self._staged = []

    def _current_head(self) -> Optional[str]:
        try:
            return self.git.head()
        except GitError as exc:
            logger.debug("Could not read HEAD: %s", exc)
            return None
