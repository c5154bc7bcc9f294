"""
Version control system (VCS) integration.

This package contains the :class:`GitClient` used by the orchestrator to
stage files, create commits and undo them again.
"""

from .git_client import FileChange, GitClient, GitError  # noqa: F401
