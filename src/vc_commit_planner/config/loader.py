"""
Configuration loader for vc_commit_planner.

Settings are read from a JSON file. The first existing location wins:

1. the path given explicitly (``--config``), which must exist,
2. ``.commit_planner.json`` in the repository root,
3. ``~/.commit_planner/config.json``.

When no file is found the defaults of :mod:`vc_commit_planner.config.settings`
apply. The file holds up to four sections::

    {
      "grouping": {"max_files_per_commit": 8, "separate_test_commits": true},
      "resolution": {"strategy": "balanced"},
      "execution": {"max_retries": 3, "retry_delay": 0.5, "rollback_strategy": "revert"},
      "embedding": {"base_url": "http://localhost", "port": 11434, "model": "nomic-embed-text"}
    }

Unknown sections or keys, values of the wrong type and unknown strategy
names raise :class:`ConfigError`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .settings import (
    EmbeddingConfig,
    GroupingConfig,
    OrchestratorConfig,
    PlannerSettings,
    ResolverConfig,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


REPO_CONFIG_NAME = ".commit_planner.json"

_NUMBER = (int, float)

_SCHEMA: Dict[str, Dict[str, Tuple[type, ...]]] = {
    "grouping": {
        "max_files_per_commit": (int,),
        "separate_test_commits": (bool,),
        "separate_doc_commits": (bool,),
        "strategy": (str,),
        "max_workers": (int,),
        "large_commit_lines": (int,),
        "max_commit_count": (int,),
        "complex_dependency_threshold": (int,),
        "heuristic_ordering": (bool,),
    },
    "resolution": {
        "strategy": (str,),
        "history_limit": (int,),
    },
    "execution": {
        "max_retries": (int,),
        "retry_delay": _NUMBER,
        "batch_size": (int,),
        "rollback_strategy": (str,),
        "preserve_working_tree": (bool,),
        "auto_recovery": (bool,),
    },
    "embedding": {
        "base_url": (str,),
        "port": (int,),
        "model": (str,),
        "request_timeout": _NUMBER,
        "max_clusters": (int,),
        "min_cluster_size": (int,),
    },
}

_CHOICES = {
    ("grouping", "strategy"): ("heuristic", "embedding"),
    ("resolution", "strategy"): ("conservative", "aggressive", "balanced", "user_guided"),
    ("execution", "rollback_strategy"): ("reset", "revert"),
}

_POSITIVE = {
    ("grouping", "max_files_per_commit"),
    ("grouping", "max_workers"),
    ("execution", "max_retries"),
    ("execution", "batch_size"),
    ("embedding", "max_clusters"),
    ("embedding", "min_cluster_size"),
}


class ConfigError(Exception):
    """Raised when the planner configuration file is missing or invalid."""

    pass


def _get_config_directory() -> Path:
    return Path.home() / ".commit_planner"


def find_config_file(path: Optional[Path] = None, repo_root: Optional[Path] = None) -> Optional[Path]:
    """Return the configuration file to use, or None for defaults.

    Raises
    ------
    ConfigError
        If ``path`` is given but does not exist.
    """
    if path is not None:
        path = Path(path)
        if not path.exists():
            logger.error("Configuration file '%s' does not exist", path)
            raise ConfigError(f"Missing configuration file: {path}")
        return path
    candidates = []
    if repo_root is not None:
        candidates.append(Path(repo_root) / REPO_CONFIG_NAME)
    candidates.append(_get_config_directory() / "config.json")
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _validate_section(name: str, values: Any) -> Dict[str, Any]:
    if not isinstance(values, dict):
        raise ConfigError(f"Section '{name}' must be an object")
    schema = _SCHEMA[name]
    unknown = sorted(set(values) - set(schema))
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(unknown)}")
    for key, value in values.items():
        expected = schema[key]
        # bool is an int subclass; only accept it where a bool is expected.
        if isinstance(value, bool) and bool not in expected:
            raise ConfigError(f"'{name}.{key}' must be {_type_name(expected)}")
        if not isinstance(value, expected):
            raise ConfigError(f"'{name}.{key}' must be {_type_name(expected)}")
        choices = _CHOICES.get((name, key))
        if choices and value not in choices:
            raise ConfigError(f"'{name}.{key}' must be one of: {', '.join(choices)}")
        if (name, key) in _POSITIVE and value < 1:
            raise ConfigError(f"'{name}.{key}' must be at least 1")
        if isinstance(value, _NUMBER) and not isinstance(value, bool) and value < 0:
            raise ConfigError(f"'{name}.{key}' must not be negative")
    return values


def _type_name(expected: Tuple[type, ...]) -> str:
    if expected == _NUMBER:
        return "a number"
    names = {bool: "a boolean", int: "an integer", str: "a string"}
    return names.get(expected[0], expected[0].__name__)


def parse_settings(data: Dict[str, Any], source: Optional[str] = None) -> PlannerSettings:
    """Validate a configuration mapping and merge it over the defaults."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a JSON object")
    unknown = sorted(set(data) - set(_SCHEMA))
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")

    sections = {name: _validate_section(name, data.get(name, {})) for name in _SCHEMA}
    return PlannerSettings(
        grouping=replace(GroupingConfig(), **sections["grouping"]),
        resolution=replace(ResolverConfig(), **sections["resolution"]),
        execution=replace(OrchestratorConfig(), **sections["execution"]),
        embedding=replace(EmbeddingConfig(), **sections["embedding"]),
        source=source,
    )


def load_config(path: Optional[Path] = None, repo_root: Optional[Path] = None) -> PlannerSettings:
    """Load planner settings.

    Parameters
    ----------
    path : Path, optional
        Explicit configuration file. Must exist when given.
    repo_root : Path, optional
        Repository whose ``.commit_planner.json`` is consulted.

    Returns
    -------
    PlannerSettings
        The validated settings, defaults where the file is silent.

    Raises
    ------
    ConfigError
        If the file is unreadable, not valid JSON or fails validation.
    """
    config_path = find_config_file(path, repo_root)
    if config_path is None:
        logger.debug("No configuration file found; using defaults")
        return PlannerSettings()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigError(f"Invalid JSON in {config_path.name}: {exc}") from exc

    settings = parse_settings(data, source=str(config_path))
    logger.debug("Loaded planner configuration from: %s", config_path)
    return settings
