"""
Grouping of change records into commits.

This package classifies changes into commit kinds and groups them into a
:class:`CommitPlan`. See :mod:`vc_commit_planner.grouping.engine` for the
pipeline and :mod:`vc_commit_planner.grouping.group_model` for the types.
"""

from .change_record import Category, ChangeKind, ChangeRecord, ChangeRecordError, load_change_records  # noqa: F401
from .group_model import CommitGroup, CommitKind, CommitPlan  # noqa: F401
