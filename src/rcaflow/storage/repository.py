"""Workflow store implementations.

This module provides versioned storage for workflows and their run log:
- SQLiteWorkflowStore: Persistent SQLite storage
- InMemoryWorkflowStore: In-memory storage for testing
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from rcaflow.core.interfaces import ExecutionRecord
from rcaflow.core.workflow import Workflow

STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS workflows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id TEXT NOT NULL,
    workflow_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    workflow_type TEXT,
    description TEXT DEFAULT '',
    status TEXT NOT NULL DEFAULT 'active',
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    definition TEXT NOT NULL,
    UNIQUE (tenant_id, workflow_id, version)
);

CREATE INDEX IF NOT EXISTS idx_workflows_tenant ON workflows(tenant_id, workflow_id);
CREATE INDEX IF NOT EXISTS idx_workflows_status ON workflows(status);

CREATE TABLE IF NOT EXISTS workflow_executions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id TEXT NOT NULL,
    workflow_version INTEGER NOT NULL,
    tenant_id TEXT NOT NULL,
    alert_payload TEXT NOT NULL,
    result TEXT,
    executed_by TEXT NOT NULL,
    executed_at TEXT NOT NULL,
    execution_time_ms INTEGER,
    status TEXT NOT NULL DEFAULT 'success'
);

CREATE INDEX IF NOT EXISTS idx_executions_tenant ON workflow_executions(tenant_id, workflow_id);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize_workflow(workflow: Workflow) -> str:
    return json.dumps(workflow.model_dump(mode="json", by_alias=True, exclude_none=True))


def _deserialize_workflow(definition: str) -> Workflow:
    return Workflow.model_validate(json.loads(definition))


# -----------------------------------------------------------------------------
# SQLite Store
# -----------------------------------------------------------------------------


class SQLiteWorkflowStore:
    """SQLite-backed versioned workflow store.

    Every save creates a new version; versions are numbered from 1 per
    (tenant, workflow id). Runs are appended to ``workflow_executions``.

    Usage:
        store = SQLiteWorkflowStore("workflows.sqlite")
        version = store.save("brand-1", workflow)
        workflow = store.get_latest_active("brand-1", workflow.id)
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """Initialize store.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = str(db_path)
        self._is_memory = self.db_path == ":memory:"
        self._persistent_conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

        if not self._is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        else:
            # An in-memory database lives only as long as its connection
            self._persistent_conn = self._create_connection()

        self._init_schema()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection; commits on success, rolls back on error."""
        if self._is_memory and self._persistent_conn:
            with self._lock:
                try:
                    yield self._persistent_conn
                    self._persistent_conn.commit()
                except Exception:
                    self._persistent_conn.rollback()
                    raise
        else:
            conn = self._create_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_schema(self) -> None:
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    def save(self, tenant_id: str, workflow: Workflow, created_by: str = "system") -> int:
        """Store ``workflow`` as the next version for (tenant, id)."""
        with self._connection() as conn:
            # Hold the write lock while the next version number is chosen
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT MAX(version) AS latest FROM workflows WHERE tenant_id = ? AND workflow_id = ?",
                (tenant_id, workflow.id),
            ).fetchone()
            version = (row["latest"] or 0) + 1
            stored = workflow.model_copy(update={"version": version})

            conn.execute(
                """
                INSERT INTO workflows (
                    tenant_id, workflow_id, version, workflow_type, description,
                    status, created_by, created_at, definition
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tenant_id,
                    workflow.id,
                    version,
                    workflow.workflow_type,
                    workflow.description,
                    STATUS_ACTIVE,
                    created_by,
                    _now(),
                    _serialize_workflow(stored),
                ),
            )
        return version

    def get_latest_active(self, tenant_id: str, workflow_id: str) -> Optional[Workflow]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT definition FROM workflows
                WHERE tenant_id = ? AND workflow_id = ? AND status = ?
                ORDER BY version DESC LIMIT 1
                """,
                (tenant_id, workflow_id, STATUS_ACTIVE),
            ).fetchone()
        return _deserialize_workflow(row["definition"]) if row else None

    def get_version(self, tenant_id: str, workflow_id: str, version: int) -> Optional[Workflow]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT definition FROM workflows WHERE tenant_id = ? AND workflow_id = ? AND version = ?",
                (tenant_id, workflow_id, version),
            ).fetchone()
        return _deserialize_workflow(row["definition"]) if row else None

    def list_versions(self, tenant_id: str, workflow_id: str) -> List[int]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT version FROM workflows WHERE tenant_id = ? AND workflow_id = ? ORDER BY version",
                (tenant_id, workflow_id),
            ).fetchall()
        return [row["version"] for row in rows]

    def archive(self, tenant_id: str, workflow_id: str, version: int) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE workflows SET status = ?
                WHERE tenant_id = ? AND workflow_id = ? AND version = ? AND status != ?
                """,
                (STATUS_ARCHIVED, tenant_id, workflow_id, version, STATUS_ARCHIVED),
            )
            return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Executions
    # -------------------------------------------------------------------------

    def record_execution(self, record: ExecutionRecord) -> int:
        executed_at = record.executed_at or _now()
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO workflow_executions (
                    workflow_id, workflow_version, tenant_id, alert_payload, result,
                    executed_by, executed_at, execution_time_ms, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.workflow_id,
                    record.workflow_version,
                    record.tenant_id,
                    json.dumps(record.alert_payload, default=str),
                    json.dumps(record.result, default=str),
                    record.executed_by,
                    executed_at,
                    record.execution_time_ms,
                    record.status,
                ),
            )
            return int(cursor.lastrowid)

    def list_executions(
        self, tenant_id: str, workflow_id: Optional[str] = None, limit: int = 50
    ) -> List[ExecutionRecord]:
        query = "SELECT * FROM workflow_executions WHERE tenant_id = ?"
        params: List[Any] = [tenant_id]
        if workflow_id is not None:
            query += " AND workflow_id = ?"
            params.append(workflow_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            workflow_version=row["workflow_version"],
            tenant_id=row["tenant_id"],
            alert_payload=json.loads(row["alert_payload"]),
            result=json.loads(row["result"]) if row["result"] else {},
            executed_by=row["executed_by"],
            executed_at=row["executed_at"],
            execution_time_ms=row["execution_time_ms"],
            status=row["status"],
        )


# -----------------------------------------------------------------------------
# In-Memory Store
# -----------------------------------------------------------------------------


class InMemoryWorkflowStore:
    """In-memory workflow store for testing.

    Same versioning semantics as SQLiteWorkflowStore; nothing is persisted.
    """

    def __init__(self):
        self._versions: Dict[Tuple[str, str], Dict[int, Tuple[Workflow, str]]] = {}
        self._executions: List[ExecutionRecord] = []
        self._lock = threading.Lock()

    def save(self, tenant_id: str, workflow: Workflow, created_by: str = "system") -> int:
        with self._lock:
            versions = self._versions.setdefault((tenant_id, workflow.id), {})
            version = max(versions, default=0) + 1
            versions[version] = (workflow.model_copy(update={"version": version}), STATUS_ACTIVE)
            return version

    def get_latest_active(self, tenant_id: str, workflow_id: str) -> Optional[Workflow]:
        versions = self._versions.get((tenant_id, workflow_id), {})
        active = [v for v, (_, status) in versions.items() if status == STATUS_ACTIVE]
        if not active:
            return None
        return versions[max(active)][0]

    def get_version(self, tenant_id: str, workflow_id: str, version: int) -> Optional[Workflow]:
        entry = self._versions.get((tenant_id, workflow_id), {}).get(version)
        return entry[0] if entry else None

    def list_versions(self, tenant_id: str, workflow_id: str) -> List[int]:
        return sorted(self._versions.get((tenant_id, workflow_id), {}))

    def archive(self, tenant_id: str, workflow_id: str, version: int) -> bool:
        with self._lock:
            versions = self._versions.get((tenant_id, workflow_id), {})
            entry = versions.get(version)
            if entry is None or entry[1] == STATUS_ARCHIVED:
                return False
            versions[version] = (entry[0], STATUS_ARCHIVED)
            return True

    def record_execution(self, record: ExecutionRecord) -> int:
        with self._lock:
            record_id = len(self._executions) + 1
            self._executions.append(
                replace(record, id=record_id, executed_at=record.executed_at or _now())
            )
            return record_id

    def list_executions(
        self, tenant_id: str, workflow_id: Optional[str] = None, limit: int = 50
    ) -> List[ExecutionRecord]:
        matches = [
            r
            for r in self._executions
            if r.tenant_id == tenant_id and (workflow_id is None or r.workflow_id == workflow_id)
        ]
        return list(reversed(matches))[:limit]
