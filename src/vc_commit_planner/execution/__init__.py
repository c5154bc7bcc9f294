"""
Plan execution: staging, committing, recovery and rollback.

The :class:`CommitOrchestrator` is the entry point; failures are reported
through :class:`ExecutionReport` rather than raised.
"""

from .errors import ErrorClassification, ErrorKind, ErrorSeverity, classify_error, is_retryable  # noqa: F401
from .orchestrator import CommitOrchestrator, OrchestrationState  # noqa: F401
from .results import (  # noqa: F401
    CommitResult,
    ExecutionReport,
    ManualRollbackPlan,
    RollbackRecord,
)
from .rollback import RollbackExecutor  # noqa: F401
