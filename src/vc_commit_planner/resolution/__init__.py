"""
Conflict detection and resolution for commit plans.

See :mod:`vc_commit_planner.resolution.resolver`.
"""

from .conflict_model import Conflict, ConflictKind, Resolution, ResolutionResult, Severity  # noqa: F401
from .resolver import ConflictResolver  # noqa: F401
