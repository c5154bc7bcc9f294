"""
Configuration for vc_commit_planner.

Settings dataclasses live in :mod:`vc_commit_planner.config.settings`;
:mod:`vc_commit_planner.config.loader` reads and validates the JSON file.
"""

from .loader import ConfigError, load_config  # noqa: F401
from .settings import (  # noqa: F401
    EmbeddingConfig,
    GroupingConfig,
    OrchestratorConfig,
    PlannerSettings,
    ResolverConfig,
)
