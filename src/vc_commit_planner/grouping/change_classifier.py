"""
Heuristics for inferring the Conventional Commit type of a group of changes.

Category-driven kinds (docs, test, chore, style) are assigned directly by
the grouping engine. For the main code group of a feature the classifier
decides between ``feat``, ``fix`` and ``refactor`` from the feature name,
the diff content and the shape of the change. It is deterministic so it
can be unit tested without a language model.
"""

from __future__ import annotations

import re
from typing import List, Sequence

from vc_commit_planner.grouping.change_record import ChangeKind, ChangeRecord
from vc_commit_planner.grouping.group_model import CommitKind


FIX_KEYWORDS = ("fix", "bug", "error", "issue", "patch", "hotfix", "repair", "correct", "resolve")
REFACTOR_KEYWORDS = ("refactor", "restructure", "reorganize", "cleanup", "optimize")
FEATURE_KEYWORDS = ("add", "new", "create", "implement", "feature", "enhance", "improve", "extend")

_NEW_STRUCTURE = re.compile(
    r"^\+.*\b(function|class|def|const\s+\w+\s*=|let\s+\w+\s*=|var\s+\w+\s*=)"
)
_NEW_ROUTE = re.compile(r"^\+.*\b(app\.|router\.|@\w+Mapping|@RequestMapping|@app\.route)")
_NEW_EXPORT = re.compile(r"^\+.*\b(export|module\.exports|__all__)")
_ERROR_HANDLING = re.compile(r"\b(try|catch|except|throw|raise|error|exception|validate|check)\b", re.IGNORECASE)


def fix_pattern_score(records: Sequence[ChangeRecord]) -> float:
    """Score how strongly the changed lines look like a bug fix (0..1)."""
    score = 0.0
    for record in records:
        for line in record.diff.splitlines():
            if not line.startswith(("+", "-")) or line.startswith(("+++", "---")):
                continue
            if re.search(r"\b(null|undefined|None)\b", line) and re.search(r"check|validate|guard", line):
                score += 0.3
            if re.search(r"try\s*[:{]|catch\s*\(|except\b", line):
                score += 0.2
            if re.search(r"===?\s*(null|undefined|false|0|\"\"|'')|!==?\s*(null|undefined)|\bis\s+(not\s+)?None\b", line):
                score += 0.2
            if re.search(r"\b(fix|bug|error|issue)\b", line, re.IGNORECASE):
                score += 0.1
            if re.search(r"[<>]=?\s*\d+|[+-]\s*1\b", line):
                score += 0.1
    return min(score, 1.0)


def has_new_functionality(records: Sequence[ChangeRecord]) -> bool:
    for record in records:
        for line in record.added_lines():
            if _NEW_STRUCTURE.search(line) or _NEW_ROUTE.search(line) or _NEW_EXPORT.search(line):
                return True
    return False


def has_error_handling_changes(records: Sequence[ChangeRecord]) -> bool:
    return any(_ERROR_HANDLING.search(line) for record in records for line in record.added_lines())


def detect_change_intent(records: Sequence[ChangeRecord], feature_name: str = "") -> CommitKind:
    """Classify the main code group of a feature.

    Parameters
    ----------
    records : Sequence[ChangeRecord]
        The files of the group.
    feature_name : str
        Name chosen for the feature; keywords in it take precedence.

    Returns
    -------
    CommitKind
        ``FIX``, ``REFACTOR`` or ``FEAT``. Anything undecided is a feature.
    """
    name = feature_name.lower()
    if any(keyword in name for keyword in FIX_KEYWORDS):
        return CommitKind.FIX
    if any(keyword in name for keyword in REFACTOR_KEYWORDS):
        return CommitKind.REFACTOR
    if any(keyword in name for keyword in FEATURE_KEYWORDS):
        return CommitKind.FEAT

    if fix_pattern_score(records) > 0.6:
        return CommitKind.FIX

    files: List[ChangeRecord] = list(records)
    if not files:
        return CommitKind.FEAT

    has_new_files = any(record.kind == ChangeKind.ADDED for record in files)
    only_modifications = all(record.kind == ChangeKind.MODIFIED for record in files)
    small_changes = all(record.total_lines < 50 for record in files)
    sizeable_changes = any(record.total_lines > 50 for record in files)
    total_added = sum(record.lines_added for record in files)
    total_removed = sum(record.lines_removed for record in files)
    if total_removed > 0:
        ratio = total_added / total_removed
    else:
        ratio = float("inf") if total_added > 0 else 0.0
    new_functionality = has_new_functionality(files)

    if only_modifications and 0.5 < ratio < 2.0 and sizeable_changes and not new_functionality:
        return CommitKind.REFACTOR

    if total_added + total_removed > 0 and (
        (only_modifications and small_changes)
        or (ratio < 0.5 and total_removed > total_added)
        or has_error_handling_changes(files)
    ):
        return CommitKind.FIX

    return CommitKind.FEAT
