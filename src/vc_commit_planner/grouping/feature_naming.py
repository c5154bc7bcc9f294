"""
Feature-name selection for groups of related changes.

The name of a feature cluster is chosen by priority:

1. a non-relative import target shared by at least two files of the group,
2. the most frequent non-generic feature label,
3. a meaningful common directory name,
4. a function or class identifier introduced in the added lines,
5. the primary file's base name.

Generic names such as ``src`` or ``utils`` never qualify at any level.
Results are memoized in a :class:`FeatureNameCache` that the caller owns
and scopes to a single planning run.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from vc_commit_planner.grouping.change_record import ChangeRecord


GENERIC_NAMES = frozenset(
    {
        "src", "lib", "libs", "utils", "util", "common", "index", "test", "tests",
        "spec", "components", "modules", "services", "helpers", "dist", "build",
        "main", "app", "core", "shared", "misc", "init", "__init__",
    }
)

# Frameworks whose import says nothing about the feature being built.
COMMON_LIBRARIES = frozenset(
    {"react", "vue", "angular", "lodash", "axios", "express", "os", "sys", "re", "json", "typing", "logging"}
)

_JS_IMPORT = re.compile(r"import\s.*?from\s+['\"`]([^'\"`]+)['\"`]")
_JS_SIDE_EFFECT_IMPORT = re.compile(r"import\s+['\"`]([^'\"`]+)['\"`]")
_REQUIRE = re.compile(r"require\(\s*['\"`]([^'\"`]+)['\"`]\s*\)")
_PY_FROM_IMPORT = re.compile(r"^\+?\s*from\s+([\w.]+)\s+import\b")
_PY_IMPORT = re.compile(r"^\+?\s*import\s+([\w.]+)\s*$")

_ENTITY = re.compile(
    r"(?:function\s+(\w+)"
    r"|class\s+(\w+)"
    r"|def\s+(\w+)"
    r"|export\s+(?:const|let|var|function|class)\s+(\w+)"
    r"|const\s+(\w+)\s*="
    r"|(\w+)\s*:\s*function)"
)


def is_generic(name: str) -> bool:
    return not name or len(name) <= 2 or name.lower() in GENERIC_NAMES


@dataclass
class FeatureNameCache:
    """Memo of feature names for one planning run.

    Keys are ``(primary path, frozenset of member paths)``; the primary
    path is part of the key because the last-resort name depends on it.
    """

    entries: Dict[Tuple[str, FrozenSet[str]], str] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0

    def get(self, primary: str, paths: Sequence[str]) -> Optional[str]:
        name = self.entries.get((primary, frozenset(paths)))
        if name is None:
            self.misses += 1
        else:
            self.hits += 1
        return name

    def put(self, primary: str, paths: Sequence[str], name: str) -> None:
        self.entries[(primary, frozenset(paths))] = name

    def __len__(self) -> int:
        return len(self.entries)


def import_target(line: str) -> Optional[str]:
    """Return the feature-bearing part of a non-relative import on ``line``."""
    module: Optional[str] = None
    separator = "/"
    for pattern in (_JS_IMPORT, _JS_SIDE_EFFECT_IMPORT, _REQUIRE):
        match = pattern.search(line)
        if match:
            module = match.group(1)
            break
    if module is None:
        for pattern in (_PY_FROM_IMPORT, _PY_IMPORT):
            match = pattern.search(line)
            if match:
                module = match.group(1)
                separator = "."
                break
    if not module or module.startswith(".") or module.lower() in COMMON_LIBRARIES:
        return None

    parts = [part.lstrip("@") for part in module.split(separator)]
    parts = [part for part in parts if part and not is_generic(part)]
    return parts[-1] if parts else None


def shared_import_targets(records: Sequence[ChangeRecord]) -> List[str]:
    """Import targets referenced by two or more files, most shared first."""
    counts: Counter = Counter()
    for record in records:
        targets = set()
        for line in record.added_lines():
            if "import" in line or "require" in line:
                target = import_target(line)
                if target:
                    targets.add(target)
        counts.update(targets)
    # Counter.most_common keeps first-insertion order for equal counts.
    return [name for name, count in counts.most_common() if count >= 2]


def meaningful_features(records: Sequence[ChangeRecord]) -> List[str]:
    counts: Counter = Counter()
    for record in records:
        counts.update(record.features)
    return [name for name, _ in counts.most_common() if not is_generic(name)]


def common_directory(paths: Sequence[str]) -> str:
    if not paths:
        return ""
    split = [PurePosixPath(path).parent.parts for path in paths]
    common: List[str] = []
    for parts in zip(*split):
        if all(part == parts[0] for part in parts):
            common.append(parts[0])
        else:
            break
    return "/".join(common)


def contextual_directory_name(records: Sequence[ChangeRecord]) -> Optional[str]:
    common = common_directory([record.path for record in records])
    meaningful = [part for part in common.split("/") if part and not is_generic(part)]
    return meaningful[-1] if meaningful else None


def entity_names(records: Sequence[ChangeRecord]) -> List[str]:
    """Identifiers introduced in added lines, longest first."""
    names: List[str] = []
    for record in records:
        for line in record.added_lines():
            for match in _ENTITY.finditer(line):
                name = next((group for group in match.groups() if group), None)
                if name and not is_generic(name) and name not in names:
                    names.append(name)
    return sorted(names, key=len, reverse=True)


def fallback_name(primary: ChangeRecord) -> str:
    path = PurePosixPath(primary.path)
    stem = path.name.split(".")[0]
    if not is_generic(stem):
        return stem
    for part in reversed(path.parent.parts):
        if not is_generic(part):
            return part
    return "misc"


def determine_feature_name(
    primary: ChangeRecord,
    related: Sequence[ChangeRecord],
    cache: Optional[FeatureNameCache] = None,
) -> str:
    """Choose the feature name for ``primary`` and its related files."""
    records = [primary, *related]
    paths = [record.path for record in records]
    if cache is not None:
        cached = cache.get(primary.path, paths)
        if cached is not None:
            return cached

    candidates = shared_import_targets(records)
    if not candidates:
        candidates = meaningful_features(records)
    if not candidates:
        directory = contextual_directory_name(records)
        candidates = [directory] if directory else []
    if not candidates:
        candidates = entity_names(records)
    name = candidates[0] if candidates else fallback_name(primary)

    if cache is not None:
        cache.put(primary.path, paths, name)
    return name
