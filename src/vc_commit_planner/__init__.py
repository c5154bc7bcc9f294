"""
Top-level package for vc_commit_planner.

The command line entry point lives in ``vc_commit_planner.cli``; library
users start from :func:`vc_commit_planner.pipeline.plan_commits` and
:class:`vc_commit_planner.execution.CommitOrchestrator`.
"""

__all__ = ["__version__", "__base_version__"]

# Major version - controlled manually by the programmer
__base_version__ = "0"

__version__ = f"{__base_version__}.1.0"
