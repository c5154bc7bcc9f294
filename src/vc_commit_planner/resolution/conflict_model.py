"""
Types describing structural defects of a commit plan and their fixes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from vc_commit_planner.grouping.group_model import CommitPlan


class ConflictKind(str, Enum):
    CIRCULAR_DEPENDENCY = "circular_dependency"
    FILE_OWNERSHIP = "file_ownership"
    LOGICAL_INCONSISTENCY = "logical_inconsistency"
    DEPENDENCY_ORDERING = "dependency_ordering"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class Conflict:
    """A defect found by one detection pass.

    ``group_ids`` lists each involved group once; for a dependency ordering
    conflict it is ``[dependent, dependency]``. ``path`` is only set for
    file ownership conflicts.
    """

    kind: ConflictKind
    severity: Severity
    group_ids: List[str]
    description: str
    suggested_resolution: str
    path: Optional[str] = None

    @property
    def advisory(self) -> bool:
        """Advisory conflicts produce warnings and never block a plan."""
        return self.kind == ConflictKind.LOGICAL_INCONSISTENCY

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "group_ids": list(self.group_ids),
            "description": self.description,
            "suggested_resolution": self.suggested_resolution,
        }
        if self.path is not None:
            data["path"] = self.path
        return data


@dataclass
class Resolution:
    conflict: Conflict
    applied: bool
    action: str
    details: str = ""
    warning: Optional[str] = None


@dataclass
class ResolutionResult:
    """Outcome of :meth:`ConflictResolver.resolve`.

    ``conflicts`` are those found before resolution; ``remaining`` are the
    blocking conflicts found by the confirmation pass.
    """

    success: bool
    plan: CommitPlan
    conflicts: List[Conflict] = field(default_factory=list)
    resolutions: List[Resolution] = field(default_factory=list)
    remaining: List[Conflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
