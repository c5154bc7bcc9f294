"""
Path-based guesses about which file depends on which.

These rules look only at file names and locations, never at content:

* an ``index.*`` file is a dependency of its siblings,
* a "core" file (``/index.``, ``/main.``, ``/core``, ``/lib``...) is a
  dependency of files in the same or a nested directory,
* a utility file is a dependency of every non-utility file.

The last rule is directionally questionable: it orders any utility file
before any other file whether or not one references the other, which can
over-constrain unrelated groups. For that reason the heuristic is only
used when ``GroupingConfig.heuristic_ordering`` is enabled, and only to add
edges to the ordering graph, never to conflict detection.
"""

from __future__ import annotations

import posixpath
import re
from typing import List, Sequence, Tuple

from vc_commit_planner.grouping.group_model import CommitGroup


_UTILITY_PATTERNS = [
    re.compile(r"/utils?/"),
    re.compile(r"/helpers?/"),
    re.compile(r"/lib/"),
    re.compile(r"/common/"),
    re.compile(r"/shared/"),
    re.compile(r"utility", re.IGNORECASE),
    re.compile(r"helper", re.IGNORECASE),
    re.compile(r"^lib/"),
    re.compile(r"common\."),
]

_CORE_PATTERNS = [
    re.compile(r"/index\."),
    re.compile(r"/main\."),
    re.compile(r"/app\."),
    re.compile(r"/base"),
    re.compile(r"/core"),
    re.compile(r"/utils"),
    re.compile(r"/lib"),
    re.compile(r"/models"),
]


def is_utility_file(path: str) -> bool:
    return any(pattern.search(path) for pattern in _UTILITY_PATTERNS)


def is_core_file(path: str) -> bool:
    return any(pattern.search(path) for pattern in _CORE_PATTERNS)


def _dirname(path: str) -> str:
    return posixpath.dirname(path) or "."


def file_depends_on(dependent: str, dependency: str) -> bool:
    """Guess whether ``dependent`` relies on ``dependency`` from paths alone."""
    if dependent == dependency:
        return False
    dir_a = _dirname(dependent)
    dir_b = _dirname(dependency)
    if dir_a == dir_b and posixpath.basename(dependency).startswith("index."):
        return True
    if dir_a.startswith(dir_b) and is_core_file(dependency):
        return True
    if is_utility_file(dependency) and not is_utility_file(dependent):
        return True
    return False


def heuristic_edges(groups: Sequence[CommitGroup]) -> List[Tuple[str, str]]:
    """Return ``(dependent id, dependency id)`` pairs implied by the path rules."""
    edges: List[Tuple[str, str]] = []
    for group in groups:
        for other in groups:
            if other.id == group.id:
                continue
            if any(
                file_depends_on(path, other_path)
                for path in group.file_paths()
                for other_path in other.file_paths()
            ):
                edges.append((group.id, other.id))
    return edges
