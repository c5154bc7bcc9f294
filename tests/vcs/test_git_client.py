import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from vc_commit_planner.vcs.git_client import FileChange, GitClient, GitError


class DummyProc(SimpleNamespace):
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""


STATUS_OUTPUT = (
    " M modified_file.py\n"
    "A  added_file.py\n"
    "D  deleted_file.py\n"
    "R  renamed_old.py -> renamed_new.py\n"
    "?? untracked.txt\n"
)


class TestGitClient(unittest.TestCase):
    def _client(self, outputs=None):
        """Return a client whose ``_run`` records calls and answers from ``outputs``."""
        self.calls = []
        outputs = outputs or {}

        def fake_run(client, args, check=True):
            self.calls.append(args)
            return DummyProc(returncode=0, stdout=outputs.get(args[0], ""), stderr="")

        patcher = patch.object(GitClient, "_run", autospec=True)
        mock_run = patcher.start()
        self.addCleanup(patcher.stop)
        mock_run.side_effect = fake_run
        return GitClient(Path("/repo"))

    def test_get_changes_parses_status(self) -> None:
        changes = self._client({"status": STATUS_OUTPUT}).get_changes()
        self.assertIn(FileChange(path="modified_file.py", status="M"), changes)
        self.assertIn(FileChange(path="added_file.py", status="A"), changes)
        self.assertIn(FileChange(path="deleted_file.py", status="D"), changes)
        self.assertIn(FileChange(path="renamed_new.py", status="R"), changes)
        self.assertTrue(all(ch.path != "untracked.txt" for ch in changes))
        self.assertEqual(self.calls, [["status", "--porcelain"]])

    def test_known_paths_include_untracked(self) -> None:
        paths = self._client({"status": STATUS_OUTPUT}).known_paths()
        self.assertEqual(
            paths,
            {"modified_file.py", "added_file.py", "deleted_file.py", "renamed_new.py", "untracked.txt"},
        )
        self.assertEqual(self.calls, [["status", "--porcelain", "--untracked-files=all"]])

    def test_staged_files(self) -> None:
        client = self._client({"diff": "a.py\n\nb.py\n"})
        self.assertEqual(client.staged_files(), ["a.py", "b.py"])
        self.assertTrue(client.has_staged_changes())
        self.assertEqual(self.calls[0], ["diff", "--cached", "--name-only"])

    def test_nothing_staged(self) -> None:
        self.assertFalse(self._client().has_staged_changes())

    def test_stage_and_unstage_commands(self) -> None:
        client = self._client()
        client.stage_files(["a.py", "gone.py"])
        client.unstage_files(["a.py"])
        client.unstage_all()
        client.stage_files([])
        client.unstage_files([])
        self.assertEqual(
            self.calls,
            [["add", "-A", "--", "a.py", "gone.py"], ["reset", "-q", "--", "a.py"], ["reset", "-q"]],
        )

    def test_commit_returns_new_head(self) -> None:
        client = self._client({"rev-parse": "abc123\n"})
        self.assertEqual(client.commit("feat: add login\n\nbody"), "abc123")
        self.assertEqual(self.calls, [["commit", "-m", "feat: add login\n\nbody"], ["rev-parse", "HEAD"]])

    def test_log_parses_hash_and_subject(self) -> None:
        client = self._client({"log": "abc\tfeat: one\ndef\tfix: two\twith tab\n"})
        self.assertEqual(client.log(2), [("abc", "feat: one"), ("def", "fix: two\twith tab")])
        self.assertEqual(self.calls, [["log", "-n2", "--format=%H%x09%s"]])

    def test_reset_and_revert(self) -> None:
        client = self._client({"rev-parse": "r1\n"})
        client.reset("HEAD~2", mode="soft")
        self.assertEqual(client.revert("c2"), "r1")
        client.revert_abort()
        self.assertEqual(
            self.calls,
            [["reset", "--soft", "HEAD~2"], ["revert", "--no-edit", "c2"], ["rev-parse", "HEAD"], ["revert", "--abort"]],
        )

    def test_reset_rejects_unknown_mode(self) -> None:
        client = self._client()
        with self.assertRaises(ValueError):
            client.reset("HEAD~1", mode="keep")
        self.assertEqual(self.calls, [])


class TestGitClientRun(unittest.TestCase):
    def test_non_zero_exit_raises_git_error_with_stderr(self) -> None:
        proc = DummyProc(returncode=1, stdout="", stderr="fatal: pathspec 'x' did not match any files\n")
        with patch("subprocess.run", return_value=proc) as mock_run:
            with self.assertRaises(GitError) as ctx:
                GitClient(Path("/repo")).stage_files(["x"])
        self.assertEqual(str(ctx.exception), "fatal: pathspec 'x' did not match any files")
        self.assertEqual(mock_run.call_args[0][0], ["git", "add", "-A", "--", "x"])
        self.assertEqual(mock_run.call_args[1]["cwd"], Path("/repo"))

    def test_unchecked_failure_is_returned(self) -> None:
        proc = DummyProc(returncode=128, stdout="", stderr="error: no revert in progress")
        with patch("subprocess.run", return_value=proc):
            GitClient(Path("/repo")).revert_abort()

    def test_missing_git_binary(self) -> None:
        with patch("subprocess.run", side_effect=FileNotFoundError("git")):
            with self.assertRaises(GitError):
                GitClient(Path("/repo")).head()

    def test_stdout_used_when_stderr_empty(self) -> None:
        proc = DummyProc(returncode=1, stdout="nothing to commit, working tree clean\n", stderr="")
        with patch("subprocess.run", return_value=proc):
            with self.assertRaises(GitError) as ctx:
                GitClient(Path("/repo")).commit("feat: x")
        self.assertIn("nothing to commit", str(ctx.exception))


class TestFindRepoRoot(unittest.TestCase):
    def test_walks_up_to_git_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / ".git").mkdir()
            nested = root / "src" / "pkg"
            nested.mkdir(parents=True)
            self.assertEqual(GitClient.find_repo_root(nested), root)
            self.assertTrue(GitClient.is_repo(root))
            self.assertFalse(GitClient.is_repo(nested))


if __name__ == "__main__":
    unittest.main()
