"""Interfaces (Protocols) for rcaflow collaborators.

The interpreter talks to its data source and workflow store through these
narrow contracts. Using Protocols allows for easy fakes in tests and swapping
implementations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from rcaflow.core.workflow import Workflow


# -----------------------------------------------------------------------------
# Query filters
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class EqualityFilter:
    """``column = value`` predicate appended to a template's WHERE clause."""
    column: str
    value: Any


@dataclass(frozen=True)
class HourOfDayFilter:
    """Restrict rows to one hour of day on the template's time column."""
    hour: int


QueryFilter = EqualityFilter | HourOfDayFilter


# -----------------------------------------------------------------------------
# Query collaborator
# -----------------------------------------------------------------------------


@runtime_checkable
class QueryExecutor(Protocol):
    """Interface for tenant-scoped, whitelisted query execution.

    Implementations:
    - SQLiteQueryExecutor: per-tenant SQLite databases
    """

    def execute(
        self,
        tenant_id: str,
        template_name: str,
        params: Sequence[Any],
        filters: Sequence[QueryFilter] = (),
        group_column: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Run a named template and return its rows as dicts.

        Parameters are bound in order: ``params`` first, then filter values in
        filter order. ``group_column`` is only used by templates that group by a
        caller-chosen column.
        """
        ...


# -----------------------------------------------------------------------------
# Workflow store
# -----------------------------------------------------------------------------


@dataclass
class ExecutionRecord:
    """One logged workflow run."""
    workflow_id: str
    workflow_version: int
    tenant_id: str
    alert_payload: Dict[str, Any]
    result: Dict[str, Any]
    executed_by: str
    status: str
    execution_time_ms: int
    executed_at: Optional[str] = None
    id: Optional[int] = None


@runtime_checkable
class WorkflowStore(Protocol):
    """Interface for versioned workflow persistence.

    Implementations:
    - SQLiteWorkflowStore: SQLite-backed storage
    - InMemoryWorkflowStore: For testing
    """

    def save(self, tenant_id: str, workflow: "Workflow", created_by: str = "system") -> int:
        """Persist a new version of ``workflow`` and return its version number."""
        ...

    def get_latest_active(self, tenant_id: str, workflow_id: str) -> Optional["Workflow"]:
        """Get the highest active version, or None if there is none."""
        ...

    def get_version(self, tenant_id: str, workflow_id: str, version: int) -> Optional["Workflow"]:
        """Get one specific version."""
        ...

    def list_versions(self, tenant_id: str, workflow_id: str) -> List[int]:
        """All stored version numbers, ascending."""
        ...

    def archive(self, tenant_id: str, workflow_id: str, version: int) -> bool:
        """Mark a version archived. Returns True if a row changed."""
        ...

    def record_execution(self, record: ExecutionRecord) -> int:
        """Log a run and return the record id."""
        ...

    def list_executions(
        self, tenant_id: str, workflow_id: Optional[str] = None, limit: int = 50
    ) -> List[ExecutionRecord]:
        """Most recent runs first."""
        ...
