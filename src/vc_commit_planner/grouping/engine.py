"""
Grouping engine: turns change records into an ordered commit plan.

The engine indexes the records, lets its :class:`GroupingStrategy`
partition them into feature clusters, splits every cluster by category,
chunks oversized groups, scores and sorts the groups and finally moves
dependencies ahead of their dependents. The plan it returns is not yet
guaranteed to be conflict free; that is the resolver's job.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from vc_commit_planner.config.settings import GroupingConfig
from vc_commit_planner.graph import Graph, build_group_graph, stable_topological_order
from vc_commit_planner.grouping.change_classifier import detect_change_intent
from vc_commit_planner.grouping.change_record import Category, ChangeRecord
from vc_commit_planner.grouping.feature_naming import FeatureNameCache
from vc_commit_planner.grouping.group_model import (
    KIND_BASE_PRIORITY,
    KIND_ORDER,
    CommitGroup,
    CommitKind,
    CommitPlan,
)
from vc_commit_planner.grouping.heuristics import heuristic_edges
from vc_commit_planner.grouping.strategies import (
    ChangeIndex,
    FeatureCluster,
    GroupingStrategy,
    HeuristicStrategy,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


NO_CHANGES_WARNING = "No changes to commit"

_DESCRIPTIONS = {
    CommitKind.FEAT: "implement {name}",
    CommitKind.FIX: "fix {name}",
    CommitKind.REFACTOR: "refactor {name}",
    CommitKind.TEST: "update {name} tests",
    CommitKind.DOCS: "update {name} documentation",
    CommitKind.CHORE: "update {name} configuration",
    CommitKind.STYLE: "format {name}",
}


def calculate_priority(kind: CommitKind, records: Sequence[ChangeRecord]) -> int:
    """Kind base score plus capped dependency and size contributions."""
    if not records:
        return KIND_BASE_PRIORITY[kind]
    avg_dependencies = sum(len(record.dependencies) for record in records) / len(records)
    total_lines = sum(record.total_lines for record in records)
    score = KIND_BASE_PRIORITY[kind] + min(avg_dependencies * 5, 20) + min(total_lines / 10, 20)
    return int(round(score))


def chunk(records: Sequence[ChangeRecord], size: int) -> List[List[ChangeRecord]]:
    size = max(1, size)
    return [list(records[start:start + size]) for start in range(0, len(records), size)]


def _reaches(graph: Graph, start: str, target: str) -> bool:
    stack = [start]
    seen: Set[str] = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(graph.get(node, ()))
    return False


class GroupingEngine:
    """Partition change records into a scored, ordered :class:`CommitPlan`.

    Parameters
    ----------
    config : GroupingConfig, optional
        Thresholds and switches; defaults apply when omitted.
    strategy : GroupingStrategy, optional
        How records are clustered into features. Defaults to the
        heuristic strategy.
    cache : FeatureNameCache, optional
        Feature-name memo for the run. A fresh cache is created for each
        :meth:`group` call when none is given.
    """

    def __init__(
        self,
        config: Optional[GroupingConfig] = None,
        strategy: Optional[GroupingStrategy] = None,
        cache: Optional[FeatureNameCache] = None,
    ) -> None:
        self.config = config or GroupingConfig()
        self.strategy = strategy or HeuristicStrategy(max_workers=self.config.max_workers)
        self.cache = cache

    def group(self, records: Iterable[ChangeRecord]) -> CommitPlan:
        records = self._unique(records)
        if not records:
            return CommitPlan(groups=[], total_files=0, warnings=[NO_CHANGES_WARNING])

        cache = self.cache if self.cache is not None else FeatureNameCache()
        index = ChangeIndex(records)
        clusters = self._complete(self.strategy.partition(records, index, cache), records)
        logger.debug(
            "Strategy '%s' produced %d feature clusters (name cache: %d hits, %d misses)",
            self.strategy.name,
            len(clusters),
            cache.hits,
            cache.misses,
        )

        groups: List[CommitGroup] = []
        for cluster in clusters:
            groups.extend(self._split_cluster(cluster))
        for number, group in enumerate(groups, start=1):
            group.id = f"group-{number}"

        groups = self._order(groups)
        plan = CommitPlan(groups=groups, total_files=len(records))
        self._add_warnings(plan)
        return plan

    # ------------------------------------------------------------------
    # Partitioning
    # ------------------------------------------------------------------
    @staticmethod
    def _unique(records: Iterable[ChangeRecord]) -> List[ChangeRecord]:
        unique: Dict[str, ChangeRecord] = {}
        for record in records:
            if record.path in unique:
                logger.warning("Duplicate change record for %s ignored", record.path)
                continue
            unique[record.path] = record
        return list(unique.values())

    @staticmethod
    def _complete(clusters: Sequence[FeatureCluster], records: Sequence[ChangeRecord]) -> List[FeatureCluster]:
        """Ensure every record sits in exactly one cluster."""
        placed: Set[str] = set()
        result: List[FeatureCluster] = []
        for cluster in clusters:
            members = []
            for record in cluster.records:
                if record.path not in placed:
                    placed.add(record.path)
                    members.append(record)
            if members:
                result.append(FeatureCluster(cluster.name, members))
        for record in records:
            if record.path not in placed:
                logger.warning("%s was not assigned to a feature; committing it on its own", record.path)
                placed.add(record.path)
                result.append(FeatureCluster(record.path, [record]))
        return result

    def _split_cluster(self, cluster: FeatureCluster) -> List[CommitGroup]:
        by_category: Dict[Category, List[ChangeRecord]] = {category: [] for category in Category}
        for record in cluster.records:
            by_category[record.category].append(record)

        buckets: List[Tuple[CommitKind, List[ChangeRecord]]] = []
        if self.config.separate_doc_commits and by_category[Category.DOCS]:
            buckets.append((CommitKind.DOCS, by_category[Category.DOCS]))
        if self.config.separate_test_commits and by_category[Category.TEST]:
            buckets.append((CommitKind.TEST, by_category[Category.TEST]))
        if by_category[Category.CONFIG]:
            buckets.append((CommitKind.CHORE, by_category[Category.CONFIG]))
        if by_category[Category.STYLE]:
            buckets.append((CommitKind.STYLE, by_category[Category.STYLE]))

        main = list(by_category[Category.FEATURE])
        if not self.config.separate_test_commits:
            main.extend(by_category[Category.TEST])
        if not self.config.separate_doc_commits:
            main.extend(by_category[Category.DOCS])
        if main:
            buckets.append((detect_change_intent(main, cluster.name), main))

        groups: List[CommitGroup] = []
        for kind, members in buckets:
            groups.extend(self._make_groups(kind, cluster.name, members))
        return groups

    def _make_groups(self, kind: CommitKind, name: str, records: List[ChangeRecord]) -> List[CommitGroup]:
        parts = chunk(records, self.config.max_files_per_commit)
        scope = None if name == "misc" else name
        groups = []
        for number, part in enumerate(parts, start=1):
            description = _DESCRIPTIONS[kind].format(name=name)
            if len(parts) > 1:
                description = f"{description} (part {number}/{len(parts)})"
            groups.append(
                CommitGroup(
                    id="",
                    kind=kind,
                    description=description,
                    files=part,
                    scope=scope,
                    priority=calculate_priority(kind, part),
                )
            )
        return groups

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    def _order(self, groups: List[CommitGroup]) -> List[CommitGroup]:
        groups = sorted(groups, key=lambda g: (-g.priority, KIND_ORDER[g.kind], g.file_count))
        graph = build_group_graph(groups)
        if self.config.heuristic_ordering:
            self._add_heuristic_edges(graph, heuristic_edges(groups))
        order = stable_topological_order([group.id for group in groups], graph)
        by_id = {group.id: group for group in groups}
        return [by_id[group_id] for group_id in order]

    @staticmethod
    def _add_heuristic_edges(graph: Graph, edges: Sequence[Tuple[str, str]]) -> None:
        """Add path-heuristic edges that do not close a cycle."""
        for source, target in edges:
            if target in graph[source]:
                continue
            if _reaches(graph, target, source):
                logger.debug("Skipping heuristic edge %s -> %s; it would form a cycle", source, target)
                continue
            graph[source].append(target)

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------
    def _add_warnings(self, plan: CommitPlan) -> None:
        config = self.config
        for group in plan.groups:
            if group.file_count > config.max_files_per_commit:
                plan.add_warning(
                    f'Commit "{group.id}" contains {group.file_count} files, which exceeds '
                    f"the recommended maximum of {config.max_files_per_commit}"
                )
            if group.total_lines > config.large_commit_lines:
                plan.add_warning(
                    f'Commit "{group.id}" contains {group.total_lines} line changes, '
                    "consider splitting into smaller commits"
                )
        if plan.commit_count > config.max_commit_count:
            plan.add_warning(
                f"This commit plan contains {plan.commit_count} commits, which may be excessive. "
                "Consider grouping related changes together."
            )
        complex_files = [
            record
            for group in plan.groups
            for record in group.files
            if len(record.dependencies) > config.complex_dependency_threshold
        ]
        if complex_files:
            plan.add_warning(
                f"Found {len(complex_files)} files with complex dependencies, review commit order carefully"
            )
