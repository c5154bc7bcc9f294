"""
Planning pipeline: group change records, then resolve plan conflicts.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from vc_commit_planner.config.settings import PlannerSettings
from vc_commit_planner.grouping.change_record import ChangeRecord
from vc_commit_planner.grouping.engine import GroupingEngine
from vc_commit_planner.grouping.feature_naming import FeatureNameCache
from vc_commit_planner.grouping.strategies import EmbeddingClusterStrategy, GroupingStrategy, HeuristicStrategy
from vc_commit_planner.llm.ollama_client import OllamaClient
from vc_commit_planner.resolution.conflict_model import ResolutionResult
from vc_commit_planner.resolution.resolver import ConflictResolver


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


def build_strategy(settings: PlannerSettings) -> GroupingStrategy:
    """Return the grouping strategy named by ``settings.grouping.strategy``."""
    heuristic = HeuristicStrategy(max_workers=settings.grouping.max_workers)
    if settings.grouping.strategy != "embedding":
        return heuristic
    embedding = settings.embedding
    client = OllamaClient(
        base_url=embedding.base_url,
        port=embedding.port,
        model=embedding.model,
        request_timeout=embedding.request_timeout,
    )
    return EmbeddingClusterStrategy(
        client,
        max_clusters=embedding.max_clusters,
        min_cluster_size=embedding.min_cluster_size,
        fallback=heuristic,
    )


def plan_commits(
    records: Iterable[ChangeRecord],
    settings: Optional[PlannerSettings] = None,
    strategy: Optional[GroupingStrategy] = None,
    cache: Optional[FeatureNameCache] = None,
) -> ResolutionResult:
    """Group ``records`` into a commit plan and resolve its conflicts.

    Parameters
    ----------
    records : Iterable[ChangeRecord]
        The analyzed changes.
    settings : PlannerSettings, optional
        Grouping and resolution settings; defaults apply when omitted.
    strategy : GroupingStrategy, optional
        Overrides the strategy selected by ``settings``.
    cache : FeatureNameCache, optional
        Feature-name memo shared with the caller.

    Returns
    -------
    ResolutionResult
        The resolved plan together with detected and residual conflicts.
    """
    settings = settings or PlannerSettings()
    engine = GroupingEngine(settings.grouping, strategy or build_strategy(settings), cache)
    plan = engine.group(records)
    logger.debug("Grouped %d files into %d commit groups", plan.total_files, plan.commit_count)

    resolver = ConflictResolver(settings.resolution.strategy, settings.resolution.history_limit)
    result = resolver.resolve(plan)
    if result.remaining:
        logger.warning("%d conflicts could not be resolved", len(result.remaining))
    return result
