"""
Classification of git failures met while executing a commit plan.

Git reports failures as free text on stderr, so classification works on
the lower-cased message. Patterns are checked in a fixed order and the
first match wins; for example "nothing to commit" is a ``no_changes``
error even though it also contains no retryable hint.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Pattern, Sequence, Tuple


class ErrorKind(str, Enum):
    NO_CHANGES = "no_changes"
    FILE_MISSING = "file_missing"
    PERMISSION = "permission"
    REPOSITORY_STATE = "repository_state"
    CONFLICT = "conflict"
    DISK_SPACE = "disk_space"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorClassification:
    """How a failure should be handled.

    Attributes
    ----------
    kind : ErrorKind
        Failure family.
    severity : ErrorSeverity
        ``high`` and ``critical`` failures end the group as failed.
    retryable : bool
        Whether retrying the same commit may succeed.
    auto_recoverable : bool
        Whether the orchestrator can skip or narrow the group on its own.
    suggested_actions : Tuple[str, ...]
        Operator hints, most relevant first.
    recovery_action : str
        One-line summary of what should happen next.
    recoverable : bool
        False when only an operator can fix the cause.
    """

    kind: ErrorKind
    severity: ErrorSeverity
    retryable: bool = False
    auto_recoverable: bool = False
    suggested_actions: Tuple[str, ...] = ()
    recovery_action: str = "Manual intervention required"
    recoverable: bool = True


_NON_RETRYABLE = re.compile(
    r"not a git repository|permission denied|disk full|no space|nothing to commit|working tree clean",
    re.IGNORECASE,
)
_RETRYABLE = re.compile(r"network|timeout|timed out|connection|temporar|busy|lock", re.IGNORECASE)

_RULES: Sequence[Tuple[Pattern[str], ErrorClassification]] = [
    (
        re.compile(r"nothing to commit|no changes added|working tree clean"),
        ErrorClassification(
            ErrorKind.NO_CHANGES,
            ErrorSeverity.LOW,
            auto_recoverable=True,
            suggested_actions=("Skip this commit group", "Check if files were already committed"),
            recovery_action="Skip commit group and continue",
        ),
    ),
    (
        re.compile(r"file not found|pathspec|did not match|no such file"),
        ErrorClassification(
            ErrorKind.FILE_MISSING,
            ErrorSeverity.MEDIUM,
            auto_recoverable=True,
            suggested_actions=("Remove missing files from commit group", "Check file paths"),
            recovery_action="Remove problematic files and retry",
        ),
    ),
    (
        re.compile(r"permission denied|access denied"),
        ErrorClassification(
            ErrorKind.PERMISSION,
            ErrorSeverity.HIGH,
            recoverable=False,
            suggested_actions=("Check file permissions", "Run with appropriate privileges"),
            recovery_action="Fix permissions and retry manually",
        ),
    ),
    (
        re.compile(r"not a git repository|bad revision"),
        ErrorClassification(
            ErrorKind.REPOSITORY_STATE,
            ErrorSeverity.CRITICAL,
            recoverable=False,
            suggested_actions=("Check git repository integrity", "Reinitialize repository if needed"),
            recovery_action="Fix repository state manually",
        ),
    ),
    (
        re.compile(r"conflict|merge"),
        ErrorClassification(
            ErrorKind.CONFLICT,
            ErrorSeverity.HIGH,
            suggested_actions=("Resolve conflicts manually", "Check for concurrent changes"),
            recovery_action="Resolve conflicts and retry",
        ),
    ),
    (
        re.compile(r"disk full|no space"),
        ErrorClassification(
            ErrorKind.DISK_SPACE,
            ErrorSeverity.CRITICAL,
            recoverable=False,
            suggested_actions=("Free up disk space", "Check available storage"),
            recovery_action="Free disk space and retry",
        ),
    ),
    (
        _RETRYABLE,
        ErrorClassification(
            ErrorKind.TRANSIENT,
            ErrorSeverity.MEDIUM,
            retryable=True,
            suggested_actions=("Check network connection or running git processes", "Retry operation"),
            recovery_action="Wait and retry",
        ),
    ),
]

_UNKNOWN = ErrorClassification(
    ErrorKind.UNKNOWN,
    ErrorSeverity.MEDIUM,
    suggested_actions=("Inspect the git output", "Retry the commit manually"),
)


def classify_error(message: str) -> ErrorClassification:
    """Classify a git error message."""
    text = (message or "").lower()
    for pattern, classification in _RULES:
        if pattern.search(text):
            return classification
    return _UNKNOWN


def is_retryable(message: str) -> bool:
    """True for transient failures (network, timeout, lock, busy).

    Known structural failures are excluded first, so "permission denied on
    index.lock" is not retried.
    """
    text = message or ""
    if _NON_RETRYABLE.search(text):
        return False
    return bool(_RETRYABLE.search(text))
