"""
Conflict detection and resolution for commit plans.

:class:`ConflictResolver` runs four independent detection passes over the
groups of a plan:

* circular dependencies, one per strongly connected set of groups,
* files owned by more than one group,
* logically inconsistent groups (advisory only),
* groups ordered before a group they depend on.

Conflicts are resolved one by one in detection order on a copy of the
plan, then detection runs once more to confirm convergence. Whatever is
still blocking is returned with ``success=False``; the resolver never
loops until convergence.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from vc_commit_planner.graph import build_group_graph, cycle_walk, find_cycles, owners_by_path, ordering_violations
from vc_commit_planner.grouping.change_record import Category, ChangeKind
from vc_commit_planner.grouping.group_model import CommitGroup, CommitPlan
from vc_commit_planner.resolution.conflict_model import (
    Conflict,
    ConflictKind,
    Resolution,
    ResolutionResult,
    Severity,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


STRATEGIES = ("conservative", "aggressive", "balanced", "user_guided")


@dataclass
class ResolutionAttempt:
    timestamp: float
    strategy: str
    conflict_kinds: List[ConflictKind]
    success: bool


class _Workspace:
    """Mutable copy of the plan's groups while conflicts are being applied.

    Merged group ids are redirected to the group that absorbed them, so a
    later conflict that still names a merged group acts on the survivor.
    """

    def __init__(self, groups: Sequence[CommitGroup]) -> None:
        self.groups: List[CommitGroup] = [group.copy() for group in groups]
        self.aliases: Dict[str, str] = {}

    def resolve_id(self, group_id: str) -> str:
        while group_id in self.aliases:
            group_id = self.aliases[group_id]
        return group_id

    def index_of(self, group_id: str) -> int:
        group_id = self.resolve_id(group_id)
        for index, group in enumerate(self.groups):
            if group.id == group_id:
                return index
        return -1

    def get(self, group_id: str) -> Optional[CommitGroup]:
        index = self.index_of(group_id)
        return self.groups[index] if index >= 0 else None


class ConflictResolver:
    """Detect and resolve structural conflicts of a commit plan.

    Parameters
    ----------
    strategy : str
        ``conservative``, ``aggressive``, ``balanced`` or ``user_guided``.
        All of them apply the same concrete fixes; ``balanced`` tries the
        conservative fix first and falls back to the aggressive one, and
        ``user_guided`` behaves like ``balanced``.
    history_limit : int
        Number of resolution attempts kept for :meth:`stats`.

    Raises
    ------
    ValueError
        If ``strategy`` is unknown.
    """

    def __init__(self, strategy: str = "balanced", history_limit: int = 100) -> None:
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown resolution strategy: {strategy}")
        self.strategy = strategy
        self.history: Deque[ResolutionAttempt] = deque(maxlen=max(1, history_limit))
        self._strategies: Dict[str, Callable[[Conflict, _Workspace], Resolution]] = {
            "conservative": self._resolve_conservatively,
            "aggressive": self._resolve_aggressively,
            "balanced": self._resolve_balanced,
            "user_guided": self._resolve_balanced,
        }

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------
    def detect(self, groups: Sequence[CommitGroup]) -> List[Conflict]:
        """Run every detection pass and return the conflicts in pass order."""
        groups = list(groups)
        graph = build_group_graph(groups)
        conflicts: List[Conflict] = []
        conflicts.extend(self._detect_cycles(graph))
        conflicts.extend(self._detect_ownership(groups))
        conflicts.extend(self._detect_inconsistencies(groups))
        conflicts.extend(self._detect_ordering(groups, graph))
        return conflicts

    @staticmethod
    def _detect_cycles(graph: Dict[str, List[str]]) -> List[Conflict]:
        conflicts = []
        for component in find_cycles(graph):
            path = " -> ".join(cycle_walk(graph, component))
            conflicts.append(
                Conflict(
                    kind=ConflictKind.CIRCULAR_DEPENDENCY,
                    severity=Severity.HIGH,
                    group_ids=list(component),
                    description=f"Circular dependency detected: {path}",
                    suggested_resolution="merge_groups",
                )
            )
        return conflicts

    @staticmethod
    def _detect_ownership(groups: Sequence[CommitGroup]) -> List[Conflict]:
        conflicts = []
        for path, owners in owners_by_path(groups).items():
            if len(owners) > 1:
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.FILE_OWNERSHIP,
                        severity=Severity.MEDIUM,
                        group_ids=list(owners),
                        description=f"File {path} appears in multiple groups: {', '.join(owners)}",
                        suggested_resolution="assign_to_primary_group",
                        path=path,
                    )
                )
        return conflicts

    @staticmethod
    def _detect_inconsistencies(groups: Sequence[CommitGroup]) -> List[Conflict]:
        conflicts = []
        for group in groups:
            kinds = {record.kind for record in group.files}
            if ChangeKind.DELETED in kinds and kinds & {ChangeKind.ADDED, ChangeKind.MODIFIED}:
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.LOGICAL_INCONSISTENCY,
                        severity=Severity.MEDIUM,
                        group_ids=[group.id],
                        description=f"Group {group.id} mixes file deletions with additions/modifications",
                        suggested_resolution="separate_deletions",
                    )
                )
            categories = {record.category for record in group.files}
            if categories == {Category.TEST, Category.DOCS}:
                conflicts.append(
                    Conflict(
                        kind=ConflictKind.LOGICAL_INCONSISTENCY,
                        severity=Severity.LOW,
                        group_ids=[group.id],
                        description=f"Group {group.id} mixes tests and documentation without code changes",
                        suggested_resolution="separate_categories",
                    )
                )
        return conflicts

    @staticmethod
    def _detect_ordering(groups: Sequence[CommitGroup], graph: Dict[str, List[str]]) -> List[Conflict]:
        order = [group.id for group in groups]
        return [
            Conflict(
                kind=ConflictKind.DEPENDENCY_ORDERING,
                severity=Severity.HIGH,
                group_ids=[dependent, dependency],
                description=f"Group {dependent} depends on {dependency} but is ordered before it",
                suggested_resolution="reorder_groups",
            )
            for dependent, dependency in ordering_violations(order, graph)
        ]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def resolve(self, plan: CommitPlan) -> ResolutionResult:
        """Resolve the conflicts of ``plan`` and return a new plan.

        The input plan and its groups are left untouched.
        """
        conflicts = self.detect(plan.groups)
        if not conflicts:
            resolved = CommitPlan(
                groups=[group.copy() for group in plan.groups if group.files],
                total_files=plan.total_files,
                warnings=list(plan.warnings),
            )
            return ResolutionResult(success=True, plan=resolved)

        workspace = _Workspace(plan.groups)
        resolve_one = self._strategies[self.strategy]
        resolutions: List[Resolution] = []
        warnings: List[str] = []
        for conflict in conflicts:
            try:
                resolution = resolve_one(conflict, workspace)
            except Exception as exc:
                logger.error("Resolution of '%s' failed: %s", conflict.description, exc)
                resolution = Resolution(conflict, applied=False, action="failed", details=str(exc))
            resolutions.append(resolution)
            if resolution.warning:
                warnings.append(resolution.warning)
            if not resolution.applied:
                warnings.append(f"Failed to resolve conflict: {conflict.description}")
            logger.debug("%s: %s", resolution.action, resolution.details)

        dropped = [group.id for group in workspace.groups if not group.files]
        if dropped:
            logger.debug("Dropping empty groups: %s", ", ".join(dropped))
        groups = [group for group in workspace.groups if group.files]

        remaining = [conflict for conflict in self.detect(groups) if not conflict.advisory]
        success = not remaining
        for conflict in remaining:
            logger.warning("Unresolved conflict: %s", conflict.description)

        resolved = CommitPlan(groups=groups, total_files=plan.total_files, warnings=list(plan.warnings))
        for warning in warnings:
            resolved.add_warning(warning)
        self._record(conflicts, success)
        return ResolutionResult(
            success=success,
            plan=resolved,
            conflicts=conflicts,
            resolutions=resolutions,
            remaining=remaining,
            warnings=warnings,
        )

    def _resolve_conservatively(self, conflict: Conflict, workspace: _Workspace) -> Resolution:
        handlers = {
            ConflictKind.CIRCULAR_DEPENDENCY: self._merge_cycle,
            ConflictKind.FILE_OWNERSHIP: self._assign_owner,
            ConflictKind.LOGICAL_INCONSISTENCY: self._warn,
            ConflictKind.DEPENDENCY_ORDERING: self._reorder,
        }
        return handlers[conflict.kind](conflict, workspace)

    def _resolve_aggressively(self, conflict: Conflict, workspace: _Workspace) -> Resolution:
        # No separate aggressive fix exists; both paths apply the same change.
        return self._resolve_conservatively(conflict, workspace)

    def _resolve_balanced(self, conflict: Conflict, workspace: _Workspace) -> Resolution:
        resolution = self._resolve_conservatively(conflict, workspace)
        if resolution.applied:
            return resolution
        return self._resolve_aggressively(conflict, workspace)

    @staticmethod
    def _merge_cycle(conflict: Conflict, workspace: _Workspace) -> Resolution:
        members: List[str] = []
        for group_id in conflict.group_ids:
            resolved = workspace.resolve_id(group_id)
            if resolved not in members:
                members.append(resolved)
        primary = workspace.get(members[0]) if members else None
        if primary is None:
            return Resolution(conflict, applied=False, action="merge_failed", details="Primary group not found")

        merged = []
        for group_id in members[1:]:
            group = workspace.get(group_id)
            if group is None:
                continue
            primary.add_files(group.files)
            workspace.groups.remove(group)
            workspace.aliases[group.id] = primary.id
            merged.append(group.id)
        return Resolution(
            conflict,
            applied=True,
            action="merged_circular_groups",
            details=f"Merged {len(merged)} groups into {primary.id} to break circular dependency",
        )

    @staticmethod
    def _assign_owner(conflict: Conflict, workspace: _Workspace) -> Resolution:
        path = conflict.path or ""
        contenders: List[CommitGroup] = []
        for group_id in conflict.group_ids:
            group = workspace.get(group_id)
            if group is not None and group.has_path(path) and all(group is not c for c in contenders):
                contenders.append(group)
        if not contenders:
            return Resolution(conflict, applied=False, action="assign_failed", details=f"No group owns {path}")
        if len(contenders) == 1:
            return Resolution(
                conflict,
                applied=True,
                action="already_resolved",
                details=f"{path} is already owned by {contenders[0].id} only",
            )

        # max() keeps the first contender among equals.
        owner = max(contenders, key=lambda group: group.file_count)
        for group in contenders:
            if group is not owner:
                group.remove_path(path)
        return Resolution(
            conflict,
            applied=True,
            action="assigned_to_primary_group",
            details=f"Assigned {path} to group {owner.id}",
        )

    @staticmethod
    def _warn(conflict: Conflict, workspace: _Workspace) -> Resolution:
        return Resolution(
            conflict,
            applied=True,
            action="added_warning",
            details=f"Added warning for logical inconsistency in group {conflict.group_ids[0]}",
            warning=conflict.description,
        )

    @staticmethod
    def _reorder(conflict: Conflict, workspace: _Workspace) -> Resolution:
        dependent_id, dependency_id = conflict.group_ids
        dependent = workspace.index_of(dependent_id)
        dependency = workspace.index_of(dependency_id)
        if dependent < 0 or dependency < 0:
            return Resolution(conflict, applied=False, action="reorder_failed", details="Groups not found")
        if dependent == dependency or dependency < dependent:
            return Resolution(
                conflict,
                applied=True,
                action="already_satisfied",
                details=f"{workspace.resolve_id(dependency_id)} already precedes {workspace.resolve_id(dependent_id)}",
            )
        groups = workspace.groups
        groups[dependent], groups[dependency] = groups[dependency], groups[dependent]
        return Resolution(
            conflict,
            applied=True,
            action="reordered_groups",
            details=f"Moved {groups[dependent].id} before {groups[dependency].id}",
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def _record(self, conflicts: Sequence[Conflict], success: bool) -> None:
        self.history.append(
            ResolutionAttempt(
                timestamp=time.time(),
                strategy=self.strategy,
                conflict_kinds=[conflict.kind for conflict in conflicts],
                success=success,
            )
        )

    def stats(self) -> Dict[str, Any]:
        """Summarize the recorded resolution attempts."""
        total = len(self.history)
        successful = sum(1 for attempt in self.history if attempt.success)
        kinds: Counter = Counter()
        for attempt in self.history:
            kinds.update(kind.value for kind in attempt.conflict_kinds)
        most_common = kinds.most_common(1)
        return {
            "total_attempts": total,
            "successful_attempts": successful,
            "success_rate": successful / total if total else 0.0,
            "conflict_kinds": dict(kinds),
            "most_common_conflict": most_common[0][0] if most_common else "none",
        }
