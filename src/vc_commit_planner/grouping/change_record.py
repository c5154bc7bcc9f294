"""
Change records consumed by the commit planner.

A :class:`ChangeRecord` describes one analyzed file change in the working
tree: what happened to the file, how large the change is, which category
and feature labels the analyzer attached to it, and which other changed
files it references. Records are produced once per run by an external
analyzer and are never mutated by the planner.

Records can be loaded from a JSON document that is either a list of
record objects or an object with a ``changes`` list::

    {
      "changes": [
        {"path": "src/auth/login.py", "kind": "modified",
         "lines_added": 12, "lines_removed": 3, "category": "feature",
         "features": ["auth"], "dependencies": ["src/auth/session.py"]}
      ]
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class ChangeRecordError(ValueError):
    """Raised when change record input is missing or malformed."""

    pass


class ChangeKind(str, Enum):
    """What happened to a file in the working tree."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class Category(str, Enum):
    """Analyzer-assigned file category."""

    FEATURE = "feature"
    TEST = "test"
    DOCS = "docs"
    CONFIG = "config"
    STYLE = "style"


# Single-letter porcelain codes are accepted as kind aliases.
_KIND_ALIASES = {
    "a": ChangeKind.ADDED,
    "m": ChangeKind.MODIFIED,
    "d": ChangeKind.DELETED,
    "r": ChangeKind.RENAMED,
}


def _unique(items: Iterable[str], exclude: Optional[str] = None) -> Tuple[str, ...]:
    seen: List[str] = []
    for item in items:
        if item and item != exclude and item not in seen:
            seen.append(item)
    return tuple(seen)


@dataclass(frozen=True)
class ChangeRecord:
    """One analyzed file change.

    Attributes
    ----------
    path : str
        Path of the file relative to the repository root.
    kind : ChangeKind
        Added, modified, deleted or renamed.
    lines_added, lines_removed : int
        Line counts of the change.
    category : Category
        Analyzer category (feature, test, docs, config, style).
    features : Tuple[str, ...]
        Ordered feature labels attached by the analyzer.
    dependencies : Tuple[str, ...]
        Paths of other changed files this file references.
    diff : str
        Unified diff text, used for import and identifier extraction.
    old_path : Optional[str]
        Previous path of a renamed file.
    """

    path: str
    kind: ChangeKind = ChangeKind.MODIFIED
    lines_added: int = 0
    lines_removed: int = 0
    category: Category = Category.FEATURE
    features: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()
    diff: str = field(default="", repr=False)
    old_path: Optional[str] = None

    def __post_init__(self) -> None:
        # Normalise sequences so records hash and compare predictably.
        object.__setattr__(self, "features", _unique(self.features))
        object.__setattr__(self, "dependencies", _unique(self.dependencies, exclude=self.path))

    @property
    def total_lines(self) -> int:
        return self.lines_added + self.lines_removed

    @property
    def directory(self) -> str:
        parent = Path(self.path).parent.as_posix()
        return "" if parent == "." else parent

    def staged_paths(self) -> List[str]:
        """Return the paths a commit of this change has to stage.

        A rename also stages the deletion of its old path, otherwise the old
        file would stay behind in the index.
        """
        if self.kind == ChangeKind.RENAMED and self.old_path and self.old_path != self.path:
            return [self.path, self.old_path]
        return [self.path]

    def added_lines(self) -> List[str]:
        """Return the added lines of the diff, excluding file headers."""
        return [
            line
            for line in self.diff.splitlines()
            if line.startswith("+") and not line.startswith("+++")
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeRecord":
        """Build a record from a JSON-compatible mapping.

        Raises
        ------
        ChangeRecordError
            If ``path`` is missing or a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ChangeRecordError(f"Change record must be an object, got {type(data).__name__}")
        path = data.get("path") or data.get("file_path")
        if not isinstance(path, str) or not path:
            raise ChangeRecordError("Change record is missing a 'path'")

        raw_kind = str(data.get("kind", data.get("change_type", "modified"))).lower()
        try:
            kind = _KIND_ALIASES.get(raw_kind) or ChangeKind(raw_kind)
        except ValueError as exc:
            raise ChangeRecordError(f"Unknown change kind '{raw_kind}' for {path}") from exc

        raw_category = str(data.get("category", "feature")).lower()
        try:
            category = Category(raw_category)
        except ValueError:
            logger.debug("Unknown category '%s' for %s; treating as feature", raw_category, path)
            category = Category.FEATURE

        features = data.get("features", [])
        dependencies = data.get("dependencies", [])
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            raise ChangeRecordError(f"'features' must be a list of strings for {path}")
        if not isinstance(dependencies, list) or not all(isinstance(d, str) for d in dependencies):
            raise ChangeRecordError(f"'dependencies' must be a list of strings for {path}")

        try:
            lines_added = int(data.get("lines_added", 0))
            lines_removed = int(data.get("lines_removed", 0))
        except (TypeError, ValueError) as exc:
            raise ChangeRecordError(f"Line counts must be integers for {path}") from exc

        return cls(
            path=path,
            kind=kind,
            lines_added=lines_added,
            lines_removed=lines_removed,
            category=category,
            features=tuple(features),
            dependencies=tuple(dependencies),
            diff=str(data.get("diff", "")),
            old_path=data.get("old_path"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "kind": self.kind.value,
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
            "category": self.category.value,
            "features": list(self.features),
            "dependencies": list(self.dependencies),
        }
        if self.old_path:
            data["old_path"] = self.old_path
        return data


def load_change_records(path: Path) -> List[ChangeRecord]:
    """Load change records from a JSON file.

    Duplicate paths keep their first occurrence; the analyzer is expected
    to emit one record per changed file.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read change records from %s: %s", path, exc)
        raise ChangeRecordError(f"Cannot read change records from {path}: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("changes")
    if not isinstance(data, list):
        raise ChangeRecordError("Change record file must contain a list or a 'changes' list")

    records: List[ChangeRecord] = []
    seen = set()
    for item in data:
        record = ChangeRecord.from_dict(item)
        if record.path in seen:
            logger.warning("Duplicate change record for %s ignored", record.path)
            continue
        seen.add(record.path)
        records.append(record)
    logger.debug("Loaded %d change records from %s", len(records), path)
    return records
