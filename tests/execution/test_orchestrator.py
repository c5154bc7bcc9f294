import unittest

from fake_git import FakeGit

from vc_commit_planner.config.settings import OrchestratorConfig
from vc_commit_planner.execution.backoff import Backoff
from vc_commit_planner.execution.errors import ErrorKind
from vc_commit_planner.execution.orchestrator import CommitOrchestrator, OrchestrationState
from vc_commit_planner.grouping.change_record import ChangeKind, ChangeRecord
from vc_commit_planner.grouping.group_model import CommitGroup, CommitKind, CommitPlan


LOCK_ERROR = "fatal: Unable to create '/repo/.git/index.lock': File exists."
PERMISSION_ERROR = "error: insufficient permission for adding an object: Permission denied"


def _group(group_id, message, *paths):
    return CommitGroup(
        id=group_id,
        kind=CommitKind.FEAT,
        files=[ChangeRecord(path) for path in paths],
        message=message,
    )


def _plan(*groups):
    return CommitPlan(groups=list(groups), total_files=sum(group.file_count for group in groups))


def _three_groups():
    return _plan(
        _group("group-1", "feat: one", "a.py"),
        _group("group-2", "feat: two", "b.py"),
        _group("group-3", "feat: three", "c.py"),
    )


class RecordedSleep:
    def __init__(self):
        self.delays = []

    def __call__(self, delay):
        self.delays.append(delay)


class StateRecordingGit(FakeGit):
    """FakeGit that notes the orchestrator state at every call."""

    orchestrator = None

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.states = []

    def stage_files(self, files):
        self.states.append(("add", self.orchestrator.state))
        super().stage_files(files)

    def commit(self, message):
        self.states.append(("commit", self.orchestrator.state))
        return super().commit(message)

    def unstage_files(self, files):
        self.states.append(("unstage", self.orchestrator.state))
        super().unstage_files(files)


class TestPlanExecution(unittest.TestCase):
    def _orchestrator(self, git, **config):
        self.sleep = RecordedSleep()
        settings = OrchestratorConfig(**config)
        return CommitOrchestrator(git, settings, backoff=Backoff(settings.retry_delay, sleep=self.sleep))

    def test_commits_every_group_in_order(self) -> None:
        git = FakeGit(changed={"a.py", "b.py"})
        orchestrator = self._orchestrator(git)
        report = orchestrator.execute_plan(
            _plan(_group("group-1", "feat: one", "a.py"), _group("group-2", "feat: two", "b.py"))
        )
        self.assertTrue(report.success)
        self.assertEqual([r.commit_hash for r in report.results], ["c1", "c2"])
        self.assertEqual([r.group_id for r in report.results], ["group-1", "group-2"])
        self.assertEqual(report.results[0].files, ["a.py"])
        self.assertEqual(report.pre_run_head, "base")
        self.assertEqual(git.history, ["base", "c1", "c2"])
        self.assertEqual(git.index, [])
        self.assertEqual(git.calls[0], ("unstage_all",))
        self.assertEqual(git.calls[-1], ("unstage_all",))
        self.assertEqual(orchestrator.state, OrchestrationState.IDLE)
        self.assertEqual(orchestrator.stats.successful_commits, 2)
        self.assertEqual(orchestrator.stats.files_staged, 2)

    def test_group_without_message_uses_subject(self) -> None:
        git = FakeGit(changed={"auth/login.py"})
        group = CommitGroup(
            id="group-1",
            kind=CommitKind.FEAT,
            description="implement auth",
            scope="auth",
            files=[ChangeRecord("auth/login.py")],
        )
        report = self._orchestrator(git).execute_plan(_plan(group))
        self.assertTrue(report.success)
        self.assertIn(("commit", "feat(auth): implement auth"), git.calls)

    def test_empty_plan(self) -> None:
        git = FakeGit()
        report = self._orchestrator(git).execute_plan(CommitPlan())
        self.assertEqual(report.results, [])
        self.assertEqual(report.warnings, ["Commit plan has no groups; nothing to execute"])
        self.assertEqual(git.calls, [])

    def test_unknown_rollback_strategy(self) -> None:
        with self.assertRaises(ValueError):
            self._orchestrator(FakeGit()).execute_plan(_three_groups(), rollback_strategy="rebase")

    def test_nothing_to_commit_is_skipped(self) -> None:
        # Scenario: group 2 fails with "nothing to commit" and is skipped.
        git = FakeGit(changed={"a.py", "b.py"})
        git.commit_errors["feat: two"] = ["nothing to commit, working tree clean"]
        report = self._orchestrator(git).execute_plan(
            _plan(_group("group-1", "feat: one", "a.py"), _group("group-2", "feat: two", "b.py"))
        )
        self.assertTrue(report.success)
        first, second = report.results
        self.assertTrue(first.success)
        self.assertFalse(first.skipped)
        self.assertTrue(second.success)
        self.assertTrue(second.skipped)
        self.assertIsNone(second.commit_hash)
        self.assertEqual(second.attempts, 1)
        self.assertEqual(second.metadata.classification.kind, ErrorKind.NO_CHANGES)
        self.assertEqual(second.metadata.recovery.action, "skip_commit")
        self.assertIsNone(report.rollback)
        self.assertEqual(git.history, ["base", "c1"])

    def test_unchanged_files_are_skipped(self) -> None:
        git = FakeGit(changed={"a.py"})
        report = self._orchestrator(git).execute_plan(
            _plan(_group("group-1", "feat: one", "a.py"), _group("group-2", "feat: two", "clean.py"))
        )
        self.assertTrue(report.success)
        self.assertTrue(report.results[1].skipped)
        self.assertNotIn(("commit", "feat: two"), git.calls)

    def test_failure_after_commits_rolls_back(self) -> None:
        # Scenario: group 3 fails with "permission denied" after two commits.
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        git.commit_errors["feat: three"] = [PERMISSION_ERROR]
        report = self._orchestrator(git).execute_plan(_three_groups(), rollback_on_failure=True)

        self.assertFalse(report.success)
        failed = report.results[2]
        self.assertFalse(failed.success)
        self.assertEqual(failed.attempts, 1)
        self.assertEqual(failed.metadata.classification.kind, ErrorKind.PERMISSION)
        self.assertEqual(failed.metadata.commit_index, 3)
        self.assertEqual(failed.metadata.successful_commits, 2)
        self.assertEqual(failed.metadata.remaining_commits, 0)
        self.assertIn("Check file permissions", failed.metadata.suggested_actions)

        rollback = report.rollback
        self.assertTrue(rollback.success)
        self.assertEqual(rollback.strategy, "reset")
        self.assertEqual(rollback.commits_rolled_back, 2)
        self.assertIn(("reset", "HEAD~2", "hard"), git.calls)
        self.assertEqual(git.head(), report.pre_run_head)
        self.assertEqual(report.warnings, [])

    def test_rollback_preserving_working_tree(self) -> None:
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        git.commit_errors["feat: two"] = [PERMISSION_ERROR]
        report = self._orchestrator(git, preserve_working_tree=True).execute_plan(_three_groups())
        self.assertIn(("reset", "HEAD~1", "soft"), git.calls)
        self.assertEqual(report.rollback.commits_rolled_back, 1)
        self.assertEqual(len(report.results), 2)

    def test_revert_rollback(self) -> None:
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        git.commit_errors["feat: three"] = [PERMISSION_ERROR]
        report = self._orchestrator(git).execute_plan(_three_groups(), rollback_strategy="revert")
        self.assertEqual(report.rollback.strategy, "revert")
        self.assertEqual([call for call in git.calls if call[0] == "revert"], [("revert", "c2"), ("revert", "c1")])
        self.assertEqual(report.rollback.commits_rolled_back, 2)

    def test_rollback_stops_the_run_even_when_continuing_on_error(self) -> None:
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        git.commit_errors["feat: two"] = [PERMISSION_ERROR]
        report = self._orchestrator(git).execute_plan(_three_groups(), continue_on_error=True)
        self.assertEqual(len(report.results), 2)
        self.assertIsNotNone(report.rollback)
        self.assertNotIn(("commit", "feat: three"), git.calls)

    def test_continue_on_error_without_rollback(self) -> None:
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        git.commit_errors["feat: two"] = [PERMISSION_ERROR]
        report = self._orchestrator(git).execute_plan(
            _three_groups(), rollback_on_failure=False, continue_on_error=True
        )
        self.assertEqual([r.success for r in report.results], [True, False, True])
        self.assertIsNone(report.rollback)
        self.assertEqual(git.history, ["base", "c1", "c2"])
        self.assertEqual(git.changed, {"b.py"})

    def test_failure_without_prior_commits_does_not_roll_back(self) -> None:
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        git.commit_errors["feat: one"] = [PERMISSION_ERROR]
        report = self._orchestrator(git).execute_plan(_three_groups())
        self.assertEqual(len(report.results), 1)
        self.assertIsNone(report.rollback)
        self.assertFalse(report.results[0].metadata.rollback_recommended)

    def test_cancellation_between_groups(self) -> None:
        git = FakeGit(changed={"a.py", "b.py", "c.py"})
        answers = iter([True, False])
        report = self._orchestrator(git).execute_plan(_three_groups(), should_continue=lambda: next(answers))
        self.assertTrue(report.cancelled)
        self.assertFalse(report.success)
        self.assertEqual(len(report.results), 1)
        self.assertIsNone(report.rollback)
        self.assertEqual(git.history, ["base", "c1"])


class TestRetries(unittest.TestCase):
    def _orchestrator(self, git, **config):
        self.sleep = RecordedSleep()
        settings = OrchestratorConfig(**config)
        return CommitOrchestrator(git, settings, backoff=Backoff(settings.retry_delay, sleep=self.sleep))

    def test_transient_error_is_retried_up_to_max_retries(self) -> None:
        git = FakeGit(changed={"a.py"})
        git.commit_errors["feat: one"] = [LOCK_ERROR] * 5
        orchestrator = self._orchestrator(git, max_retries=3, retry_delay=0.5)
        with self.assertLogs("vc_commit_planner.execution.orchestrator", level="WARNING"):
            report = orchestrator.execute_plan(_plan(_group("group-1", "feat: one", "a.py")))
        result = report.results[0]
        self.assertFalse(result.success)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len([c for c in git.calls if c[0] == "commit"]), 3)
        self.assertEqual(self.sleep.delays, [0.5, 0.5])
        self.assertEqual(orchestrator.stats.retries, 2)
        self.assertEqual(result.metadata.classification.kind, ErrorKind.TRANSIENT)

    def test_transient_error_then_success(self) -> None:
        git = FakeGit(changed={"a.py"})
        git.commit_errors["feat: one"] = [LOCK_ERROR]
        report = self._orchestrator(git, retry_delay=0).execute_plan(_plan(_group("group-1", "feat: one", "a.py")))
        self.assertTrue(report.success)
        self.assertEqual(report.results[0].attempts, 2)
        self.assertEqual(self.sleep.delays, [])

    def test_non_retryable_error_uses_one_attempt(self) -> None:
        git = FakeGit(changed={"a.py"})
        git.commit_errors["feat: one"] = [PERMISSION_ERROR, PERMISSION_ERROR]
        report = self._orchestrator(git, max_retries=5).execute_plan(_plan(_group("group-1", "feat: one", "a.py")))
        self.assertEqual(report.results[0].attempts, 1)
        self.assertEqual(self.sleep.delays, [])

    def test_single_attempt_when_retries_disabled(self) -> None:
        git = FakeGit(changed={"a.py"})
        git.commit_errors["feat: one"] = [LOCK_ERROR]
        report = self._orchestrator(git, max_retries=1).execute_plan(_plan(_group("group-1", "feat: one", "a.py")))
        self.assertEqual(report.results[0].attempts, 1)

    def test_create_commit_rejects_empty_message(self) -> None:
        git = FakeGit()
        result = self._orchestrator(git).create_commit("   ")
        self.assertFalse(result.success)
        self.assertIn("message cannot be empty", result.error)
        self.assertEqual(git.calls, [])

    def test_create_commit_requires_staged_changes(self) -> None:
        result = self._orchestrator(FakeGit()).create_commit("feat: nothing")
        self.assertFalse(result.success)
        self.assertTrue(result.error.startswith("nothing to commit"))


class TestRecovery(unittest.TestCase):
    def test_missing_file_commits_remaining_files(self) -> None:
        git = FakeGit(changed={"a.py", "b.py"}, missing={"gone.py"})
        orchestrator = CommitOrchestrator(git)
        report = orchestrator.execute_plan(_plan(_group("group-1", "feat: one", "a.py", "gone.py", "b.py")))
        result = report.results[0]
        self.assertTrue(result.success)
        self.assertTrue(result.partial)
        self.assertEqual(result.files, ["a.py", "b.py"])
        self.assertEqual(result.commit_hash, "c1")
        self.assertEqual(result.metadata.classification.kind, ErrorKind.FILE_MISSING)
        self.assertEqual(result.metadata.recovery.skipped_files, ["gone.py"])
        self.assertEqual(report.committed, [result])

    def test_group_of_only_missing_files_is_skipped(self) -> None:
        git = FakeGit(missing={"gone.py"})
        report = CommitOrchestrator(git).execute_plan(_plan(_group("group-1", "feat: one", "gone.py")))
        self.assertTrue(report.results[0].skipped)
        self.assertEqual(report.results[0].metadata.recovery.message, "Skipped commit group - no valid files found")

    def test_rename_stages_old_and_new_path(self) -> None:
        git = FakeGit(changed={"new.txt", "old.txt"})
        group = CommitGroup(
            id="group-1",
            kind=CommitKind.REFACTOR,
            files=[ChangeRecord("new.txt", kind=ChangeKind.RENAMED, old_path="old.txt")],
            message="refactor: rename old.txt",
        )
        report = CommitOrchestrator(git).execute_plan(_plan(group))
        self.assertTrue(report.success)
        self.assertIn(("add", ["new.txt", "old.txt"]), git.calls)
        self.assertEqual(report.results[0].files, ["new.txt", "old.txt"])
        self.assertEqual(git.changed, set())

    def test_recovery_keeps_rename_old_path(self) -> None:
        git = FakeGit(changed={"new.txt", "old.txt"}, missing={"gone.py"})
        group = CommitGroup(
            id="group-1",
            kind=CommitKind.REFACTOR,
            files=[ChangeRecord("new.txt", kind=ChangeKind.RENAMED, old_path="old.txt"), ChangeRecord("gone.py")],
            message="refactor: rename old.txt",
        )
        result = CommitOrchestrator(git).execute_plan(_plan(group)).results[0]
        self.assertTrue(result.partial)
        self.assertEqual(result.files, ["new.txt", "old.txt"])
        self.assertEqual(result.metadata.recovery.skipped_files, ["gone.py"])
        self.assertEqual(git.changed, set())

    def test_auto_recovery_can_be_disabled(self) -> None:
        git = FakeGit()
        orchestrator = CommitOrchestrator(git, OrchestratorConfig(auto_recovery=False))
        report = orchestrator.execute_plan(_plan(_group("group-1", "feat: one", "clean.py")))
        result = report.results[0]
        self.assertFalse(result.success)
        self.assertFalse(result.metadata.auto_recovery_attempted)
        self.assertIn("nothing to commit", result.error)

    def test_failed_unstage_is_a_critical_failure(self) -> None:
        git = FakeGit(changed={"a.py"})
        git.commit_errors["feat: one"] = [PERMISSION_ERROR]
        git.unstage_errors = ["fatal: index file corrupt"]
        report = CommitOrchestrator(git).execute_plan(_plan(_group("group-1", "feat: one", "a.py")))
        metadata = report.results[0].metadata
        self.assertTrue(metadata.critical_failure)
        self.assertTrue(metadata.rollback_recommended)
        self.assertEqual(metadata.recovery_error, "fatal: index file corrupt")
        self.assertIn("Recovery error", report.results[0].error)
        self.assertEqual(git.index, [])

    def test_batches_are_unstaged_when_a_later_batch_fails(self) -> None:
        paths = ["f1.py", "f2.py", "f3.py", "f4.py", "gone.py"]
        git = FakeGit(changed=set(paths[:4]), missing={"gone.py"})
        orchestrator = CommitOrchestrator(git, OrchestratorConfig(batch_size=2))
        report = orchestrator.execute_plan(_plan(_group("group-1", "feat: one", *paths)))
        adds = [call[1] for call in git.calls if call[0] == "add"]
        self.assertEqual(adds[:3], [["f1.py", "f2.py"], ["f3.py", "f4.py"], ["gone.py"]])
        self.assertIn(("unstage", ["f1.py", "f2.py", "f3.py", "f4.py"]), git.calls)
        self.assertTrue(report.results[0].partial)
        self.assertEqual(report.results[0].files, paths[:4])

    def test_state_machine(self) -> None:
        git = StateRecordingGit(changed={"a.py"})
        orchestrator = CommitOrchestrator(git)
        git.orchestrator = orchestrator
        orchestrator.execute_plan(_plan(_group("group-1", "feat: one", "a.py"), _group("group-2", "feat: two", "clean.py")))
        self.assertEqual(
            git.states,
            [
                ("add", OrchestrationState.STAGING),
                ("commit", OrchestrationState.COMMITTING),
                ("add", OrchestrationState.STAGING),
                ("unstage", OrchestrationState.RECOVERING),
            ],
        )
        self.assertEqual(orchestrator.state, OrchestrationState.IDLE)


if __name__ == "__main__":
    unittest.main()
