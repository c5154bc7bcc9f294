"""
Strategies that partition change records into named feature clusters.

A :class:`GroupingStrategy` receives the records of a run, the lookup
index over them and the run's feature-name cache, and returns clusters
that together contain every record exactly once. Two variants exist:

* :class:`HeuristicStrategy` relates files through explicit dependencies,
  shared feature labels, a shared directory and reverse dependencies.
* :class:`EmbeddingClusterStrategy` embeds a summary of each change
  through Ollama and clusters the vectors with scikit-learn's ``KMeans``.
  It falls back to the heuristic strategy whenever embedding or
  clustering fails.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from vc_commit_planner.grouping.change_record import Category, ChangeRecord
from vc_commit_planner.grouping.feature_naming import FeatureNameCache, determine_feature_name
from vc_commit_planner.llm.ollama_client import LLMError, OllamaClient


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


@dataclass
class FeatureCluster:
    """Records that belong to one feature, before the category split."""

    name: str
    records: List[ChangeRecord] = field(default_factory=list)


class ChangeIndex:
    """Lookup tables over the records of one run.

    Built once so that related-file queries never rescan the whole input.
    """

    def __init__(self, records: Sequence[ChangeRecord]) -> None:
        self.records: List[ChangeRecord] = list(records)
        self.by_path: Dict[str, ChangeRecord] = {}
        self.by_category: Dict[Category, List[ChangeRecord]] = {}
        self.by_feature: Dict[str, List[ChangeRecord]] = {}
        self.by_directory: Dict[str, List[ChangeRecord]] = {}
        self.dependents: Dict[str, List[ChangeRecord]] = {}
        for record in self.records:
            self.by_path.setdefault(record.path, record)
            self.by_category.setdefault(record.category, []).append(record)
            self.by_directory.setdefault(record.directory, []).append(record)
            for feature in record.features:
                self.by_feature.setdefault(feature, []).append(record)
            for dependency in record.dependencies:
                self.dependents.setdefault(dependency, []).append(record)

    def __len__(self) -> int:
        return len(self.records)

    def related(self, record: ChangeRecord) -> List[ChangeRecord]:
        """Return the files related to ``record``, without ``record`` itself."""
        found: Dict[str, ChangeRecord] = {}

        def add(candidate: ChangeRecord) -> None:
            if candidate.path != record.path:
                found.setdefault(candidate.path, candidate)

        for dependency in record.dependencies:
            target = self.by_path.get(dependency)
            if target is not None:
                add(target)
        for dependent in self.dependents.get(record.path, ()):
            add(dependent)
        for feature in record.features:
            for candidate in self.by_feature.get(feature, ()):
                add(candidate)
        for candidate in self.by_directory.get(record.directory, ()):
            add(candidate)
        return list(found.values())


class GroupingStrategy(Protocol):
    name: str

    def partition(
        self, records: Sequence[ChangeRecord], index: ChangeIndex, cache: FeatureNameCache
    ) -> List[FeatureCluster]:
        ...


def _merge_by_name(clusters: Sequence[FeatureCluster]) -> List[FeatureCluster]:
    merged: Dict[str, FeatureCluster] = {}
    for cluster in clusters:
        target = merged.setdefault(cluster.name, FeatureCluster(cluster.name))
        target.records.extend(cluster.records)
    return list(merged.values())


class HeuristicStrategy:
    """Relate files by dependencies, feature labels and directories.

    Relation analysis only reads the index, so it runs on a thread pool.
    The results are combined by a single loop in input order, which is
    also the only place the feature-name cache is written.
    """

    name = "heuristic"

    def __init__(self, max_workers: int = 4) -> None:
        self.max_workers = max(1, max_workers)

    def _analyze(self, index: ChangeIndex, record: ChangeRecord) -> Optional[List[ChangeRecord]]:
        try:
            return index.related(record)
        except Exception as exc:  # isolate per-record failures
            logger.warning("Failed to relate %s to other changes: %s", record.path, exc)
            return None

    def partition(
        self, records: Sequence[ChangeRecord], index: ChangeIndex, cache: FeatureNameCache
    ) -> List[FeatureCluster]:
        records = list(records)
        if self.max_workers > 1 and len(records) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                analyses = list(pool.map(lambda record: self._analyze(index, record), records))
        else:
            analyses = [self._analyze(index, record) for record in records]

        visited = set()
        clusters: List[FeatureCluster] = []
        for record, related in zip(records, analyses):
            if record.path in visited:
                continue
            if related is None:
                visited.add(record.path)
                clusters.append(FeatureCluster(_singleton_name(record, cache), [record]))
                continue
            members = [record] + [other for other in related if other.path not in visited]
            name = determine_feature_name(record, related, cache)
            visited.update(member.path for member in members)
            clusters.append(FeatureCluster(name, members))
        return _merge_by_name(clusters)


def _singleton_name(record: ChangeRecord, cache: FeatureNameCache) -> str:
    try:
        return determine_feature_name(record, [], cache)
    except Exception as exc:
        logger.warning("Failed to name %s: %s", record.path, exc)
        return record.path


def change_summary(record: ChangeRecord, max_lines: int = 20) -> str:
    """Text embedded for ``record``: path, kind, category, labels and added lines."""
    parts = [
        f"path: {record.path}",
        f"change: {record.kind.value}",
        f"category: {record.category.value}",
    ]
    if record.features:
        parts.append("features: " + ", ".join(record.features))
    added = [line[1:].strip() for line in record.added_lines()]
    added = [line for line in added if line][:max_lines]
    if added:
        parts.append("\n".join(added))
    return "\n".join(parts)


class EmbeddingClusterStrategy:
    """Cluster change summaries by embedding similarity.

    Parameters
    ----------
    client : OllamaClient
        Source of embeddings.
    max_clusters : int
        Upper bound on the number of clusters.
    min_cluster_size : int
        Clusters smaller than this are regrouped heuristically, and runs
        with fewer records skip embedding entirely.
    fallback : HeuristicStrategy, optional
        Strategy used for small clusters and on failure.
    """

    name = "embedding"

    def __init__(
        self,
        client: OllamaClient,
        max_clusters: int = 8,
        min_cluster_size: int = 2,
        fallback: Optional[HeuristicStrategy] = None,
    ) -> None:
        self.client = client
        self.max_clusters = max(1, max_clusters)
        self.min_cluster_size = max(1, min_cluster_size)
        self.fallback = fallback or HeuristicStrategy()

    def _labels(self, records: Sequence[ChangeRecord]) -> List[int]:
        import numpy as np
        from sklearn.cluster import KMeans
        from sklearn.preprocessing import normalize

        vectors = self.client.embed_many([change_summary(record) for record in records])
        embeddings = normalize(np.asarray(vectors, dtype="float64"), norm="l2")
        n_samples = embeddings.shape[0]
        k = min(self.max_clusters, max(2, n_samples // 2), n_samples)
        model = KMeans(n_clusters=k, random_state=0, n_init=10)
        labels = model.fit_predict(embeddings)
        logger.debug("Clustered %d embeddings into %d clusters", n_samples, k)
        return [int(label) for label in labels]

    def partition(
        self, records: Sequence[ChangeRecord], index: ChangeIndex, cache: FeatureNameCache
    ) -> List[FeatureCluster]:
        records = list(records)
        if len(records) < max(2, self.min_cluster_size):
            return self.fallback.partition(records, index, cache)
        try:
            labels = self._labels(records)
        except (LLMError, ValueError) as exc:
            logger.warning("Embedding clustering failed, using heuristic grouping: %s", exc)
            return self.fallback.partition(records, index, cache)

        by_label: Dict[int, List[ChangeRecord]] = {}
        for record, label in zip(records, labels):
            by_label.setdefault(label, []).append(record)

        clusters: List[FeatureCluster] = []
        leftovers: List[ChangeRecord] = []
        for members in by_label.values():
            if len(members) < self.min_cluster_size:
                leftovers.extend(members)
                continue
            clusters.append(FeatureCluster(determine_feature_name(members[0], members[1:], cache), members))

        if leftovers:
            logger.debug("Regrouping %d records from small clusters heuristically", len(leftovers))
            clusters.extend(self.fallback.partition(leftovers, ChangeIndex(leftovers), cache))
        return _merge_by_name(clusters)
