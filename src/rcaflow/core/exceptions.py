"""Custom exception hierarchy for rcaflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class RCAFlowError(Exception):
    """Base exception type for all rcaflow errors."""

    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        if not self.context:
            return self.message
        return f"{self.message} | context={self.context}"


class ConfigurationError(RCAFlowError):
    """Raised when configuration is missing or invalid."""


class UnknownWindowError(RCAFlowError):
    """Raised when a time-window token cannot be resolved."""


# -----------------------------------------------------------------------------
# Workflow definition errors
# -----------------------------------------------------------------------------


class WorkflowValidationError(RCAFlowError):
    """Raised when a workflow fails validation (invalid structure)."""


class WorkflowNotFoundError(RCAFlowError):
    """Raised when a workflow is not found in the store."""


# -----------------------------------------------------------------------------
# Execution errors
# -----------------------------------------------------------------------------


class ExecutionError(RCAFlowError):
    """Raised when workflow execution fails."""


class NodeNotFoundError(ExecutionError):
    """Raised when a transition points at a node id absent from the graph."""


class StepBudgetExceededError(ExecutionError):
    """Raised when a run executes more nodes than the step budget allows."""


# -----------------------------------------------------------------------------
# Data fetch errors
# -----------------------------------------------------------------------------


class DataFetchError(RCAFlowError):
    """Raised when the query collaborator fails to return rows."""


class QueryTimeoutError(DataFetchError):
    """Raised when a query exceeds its timeout."""


class UnknownTemplateError(DataFetchError):
    """Raised when a query template name is not whitelisted."""


class InvalidFilterError(DataFetchError):
    """Raised when a filter column is not a safe identifier."""
