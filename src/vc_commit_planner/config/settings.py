"""
Settings for the commit planner.

Each stage of the pipeline reads its own dataclass; :class:`PlannerSettings`
aggregates them and is what :func:`vc_commit_planner.config.load_config`
returns. All defaults work without a configuration file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class GroupingConfig:
    """Knobs of the grouping engine."""

    max_files_per_commit: int = 10
    separate_test_commits: bool = True
    separate_doc_commits: bool = True
    strategy: str = "heuristic"  # or "embedding"
    max_workers: int = 4
    large_commit_lines: int = 500
    max_commit_count: int = 10
    complex_dependency_threshold: int = 3
    heuristic_ordering: bool = False


@dataclass
class ResolverConfig:
    strategy: str = "balanced"
    history_limit: int = 100


@dataclass
class OrchestratorConfig:
    """Execution settings.

    ``max_retries`` is the total number of commit attempts for a retryable
    error, so ``1`` disables retrying.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    batch_size: int = 50
    rollback_strategy: str = "reset"  # or "revert"
    preserve_working_tree: bool = False
    auto_recovery: bool = True


@dataclass
class EmbeddingConfig:
    """Connection to the Ollama embeddings endpoint."""

    base_url: str = "http://localhost"
    port: int = 11434
    model: str = "nomic-embed-text"
    request_timeout: float = 30.0
    max_clusters: int = 8
    min_cluster_size: int = 2


@dataclass
class PlannerSettings:
    grouping: GroupingConfig = field(default_factory=GroupingConfig)
    resolution: ResolverConfig = field(default_factory=ResolverConfig)
    execution: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    source: Optional[str] = None
