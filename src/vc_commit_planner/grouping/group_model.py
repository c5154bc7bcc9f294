"""
Data models for commit grouping.

The :class:`CommitGroup` represents a collection of related changes that
should be committed together. A :class:`CommitPlan` is the ordered list of
groups that the orchestrator executes, together with advisory warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from vc_commit_planner.grouping.change_record import ChangeRecord


class CommitKind(str, Enum):
    """Conventional Commit type of a group."""

    FEAT = "feat"
    FIX = "fix"
    DOCS = "docs"
    STYLE = "style"
    REFACTOR = "refactor"
    TEST = "test"
    CHORE = "chore"


# Base priority per kind; also defines the kind ordering used to break ties.
KIND_BASE_PRIORITY: Dict[CommitKind, int] = {
    CommitKind.CHORE: 100,
    CommitKind.FIX: 80,
    CommitKind.FEAT: 60,
    CommitKind.REFACTOR: 50,
    CommitKind.TEST: 40,
    CommitKind.DOCS: 20,
    CommitKind.STYLE: 10,
}

KIND_ORDER: Dict[CommitKind, int] = {
    kind: index
    for index, kind in enumerate(sorted(KIND_BASE_PRIORITY, key=KIND_BASE_PRIORITY.get, reverse=True))
}


@dataclass
class CommitGroup:
    """Representation of a grouped commit.

    Attributes
    ----------
    id : str
        Stable identifier within a plan (``group-1``, ``group-2``...).
    kind : CommitKind
        The Conventional Commit type.
    description : str
        Short human description of the group.
    files : List[ChangeRecord]
        Member change records, in commit order.
    scope : Optional[str]
        Optional Conventional Commit scope.
    message : str
        Commit message supplied by an external generator.
    priority : int
        Higher values are committed earlier when dependencies allow.
    """

    id: str
    kind: CommitKind
    description: str = ""
    files: List[ChangeRecord] = field(default_factory=list)
    scope: Optional[str] = None
    message: str = ""
    priority: int = 0

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_lines(self) -> int:
        added, removed = self.line_stats()
        return added + removed

    def file_paths(self) -> List[str]:
        return [record.path for record in self.files]

    def staged_paths(self) -> List[str]:
        """Return every path to stage for the group, old rename paths included."""
        paths: List[str] = []
        seen: Set[str] = set()
        for record in self.files:
            for path in record.staged_paths():
                if path not in seen:
                    seen.add(path)
                    paths.append(path)
        return paths

    def has_path(self, path: str) -> bool:
        return any(record.path == path for record in self.files)

    def line_stats(self) -> Tuple[int, int]:
        """Return ``(added, removed)`` line totals for the group."""
        added = sum(record.lines_added for record in self.files)
        removed = sum(record.lines_removed for record in self.files)
        return added, removed

    def add_files(self, records: Iterable[ChangeRecord]) -> None:
        """Append records whose paths are not already in the group."""
        present = set(self.file_paths())
        for record in records:
            if record.path not in present:
                self.files.append(record)
                present.add(record.path)

    def remove_path(self, path: str) -> bool:
        """Remove every record with ``path``; return True if one was removed."""
        before = len(self.files)
        self.files = [record for record in self.files if record.path != path]
        return len(self.files) != before

    def subject(self) -> str:
        """Conventional Commit header used when no message was generated."""
        description = self.description or f"update {self.file_count} file{'s' if self.file_count != 1 else ''}"
        if self.scope:
            return f"{self.kind.value}({self.scope}): {description}"
        return f"{self.kind.value}: {description}"

    def commit_message(self) -> str:
        return self.message.strip() or self.subject()

    def copy(self) -> "CommitGroup":
        """Shallow copy with an independent file list."""
        return CommitGroup(
            id=self.id,
            kind=self.kind,
            description=self.description,
            files=list(self.files),
            scope=self.scope,
            message=self.message,
            priority=self.priority,
        )

    def to_dict(self) -> Dict[str, Any]:
        added, removed = self.line_stats()
        return {
            "id": self.id,
            "kind": self.kind.value,
            "scope": self.scope,
            "description": self.description,
            "message": self.commit_message(),
            "priority": self.priority,
            "files": self.file_paths(),
            "lines_added": added,
            "lines_removed": removed,
        }


@dataclass
class CommitPlan:
    """Ordered sequence of commit groups plus advisory warnings."""

    groups: List[CommitGroup] = field(default_factory=list)
    total_files: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def commit_count(self) -> int:
        return len(self.groups)

    @property
    def estimated_duration(self) -> int:
        """Rough execution estimate in seconds: 5 per commit plus 1 per file."""
        return self.commit_count * 5 + self.total_file_count()

    def total_file_count(self) -> int:
        return sum(group.file_count for group in self.groups)

    def line_stats(self) -> Tuple[int, int]:
        added = sum(group.line_stats()[0] for group in self.groups)
        removed = sum(group.line_stats()[1] for group in self.groups)
        return added, removed

    def group_by_id(self, group_id: str) -> Optional[CommitGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def add_warning(self, warning: str) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": [group.to_dict() for group in self.groups],
            "total_files": self.total_files,
            "estimated_duration": self.estimated_duration,
            "warnings": list(self.warnings),
        }
