import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from vc_commit_planner.config.loader import ConfigError, find_config_file, load_config, parse_settings
from vc_commit_planner.config.settings import PlannerSettings


class TestConfigLoader(unittest.TestCase):
    """Tests for the configuration loader."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.home = Path(tmp.name) / "home"
        self.repo = Path(tmp.name) / "repo"
        self.home.mkdir()
        self.repo.mkdir()
        patcher = patch("vc_commit_planner.config.loader._get_config_directory", return_value=self.home)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_defaults_without_any_file(self) -> None:
        settings = load_config(repo_root=self.repo)
        self.assertEqual(settings, PlannerSettings())
        self.assertIsNone(settings.source)
        self.assertEqual(settings.execution.max_retries, 3)
        self.assertEqual(settings.resolution.strategy, "balanced")

    def test_repo_file_wins_over_home_file(self) -> None:
        (self.home / "config.json").write_text(json.dumps({"resolution": {"strategy": "aggressive"}}))
        repo_config = self.repo / ".commit_planner.json"
        repo_config.write_text(
            json.dumps(
                {
                    "grouping": {"max_files_per_commit": 4, "separate_test_commits": False},
                    "execution": {"retry_delay": 0.5, "rollback_strategy": "revert"},
                }
            )
        )
        settings = load_config(repo_root=self.repo)
        self.assertEqual(settings.source, str(repo_config))
        self.assertEqual(settings.grouping.max_files_per_commit, 4)
        self.assertFalse(settings.grouping.separate_test_commits)
        self.assertTrue(settings.grouping.separate_doc_commits)
        self.assertEqual(settings.execution.retry_delay, 0.5)
        self.assertEqual(settings.execution.rollback_strategy, "revert")
        self.assertEqual(settings.resolution.strategy, "balanced")

    def test_home_file_used_without_repo_file(self) -> None:
        (self.home / "config.json").write_text(json.dumps({"embedding": {"model": "all-minilm", "port": 8080}}))
        settings = load_config(repo_root=self.repo)
        self.assertEqual(settings.embedding.model, "all-minilm")
        self.assertEqual(settings.embedding.port, 8080)

    def test_explicit_path_must_exist(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self.repo / "missing.json")

    def test_explicit_path_wins(self) -> None:
        explicit = self.repo / "custom.json"
        explicit.write_text(json.dumps({"execution": {"max_retries": 1}}))
        (self.repo / ".commit_planner.json").write_text(json.dumps({"execution": {"max_retries": 5}}))
        self.assertEqual(find_config_file(explicit, self.repo), explicit)
        self.assertEqual(load_config(explicit, self.repo).execution.max_retries, 1)

    def test_invalid_json(self) -> None:
        (self.repo / ".commit_planner.json").write_text("{invalid}")
        with self.assertRaises(ConfigError):
            load_config(repo_root=self.repo)


class TestParseSettings(unittest.TestCase):
    def test_rejects_invalid_values(self) -> None:
        cases = [
            [],
            {"colors": {}},
            {"grouping": []},
            {"grouping": {"max_files": 3}},
            {"grouping": {"max_files_per_commit": True}},
            {"grouping": {"max_files_per_commit": "10"}},
            {"grouping": {"max_files_per_commit": 0}},
            {"grouping": {"strategy": "random"}},
            {"resolution": {"strategy": "yolo"}},
            {"execution": {"rollback_strategy": "squash"}},
            {"execution": {"retry_delay": -1}},
            {"execution": {"preserve_working_tree": "yes"}},
        ]
        for data in cases:
            with self.subTest(data=data):
                with self.assertRaises(ConfigError):
                    parse_settings(data)

    def test_accepts_integer_for_number(self) -> None:
        settings = parse_settings({"execution": {"retry_delay": 2}, "embedding": {"request_timeout": 10}})
        self.assertEqual(settings.execution.retry_delay, 2)
        self.assertEqual(settings.embedding.request_timeout, 10)

    def test_does_not_share_defaults(self) -> None:
        first = parse_settings({"grouping": {"max_workers": 2}})
        second = parse_settings({})
        self.assertEqual(first.grouping.max_workers, 2)
        self.assertEqual(second.grouping.max_workers, 4)


if __name__ == "__main__":
    unittest.main()
