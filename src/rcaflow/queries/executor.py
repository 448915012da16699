"""SQLite-backed query execution against per-tenant databases."""

from __future__ import annotations

import queue
import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar

from rcaflow.core.exceptions import DataFetchError, QueryTimeoutError
from rcaflow.core.interfaces import QueryFilter
from rcaflow.queries.templates import TENANT_SCHEMA, get_template
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Number of SQLite VM instructions between deadline checks
_PROGRESS_INTERVAL = 1000


def fetch_concurrently(*calls: Callable[[], T]) -> List[T]:
    """Run independent fetches in parallel and join them.

    Results are returned in call order. The first failure is re-raised once
    every call has finished.
    """
    with ThreadPoolExecutor(max_workers=max(len(calls), 1)) as pool:
        futures = [pool.submit(call) for call in calls]
        return [future.result() for future in futures]


def initialize_tenant_database(path: str | Path) -> None:
    """Create the tenant tables in a SQLite file if they do not exist."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(TENANT_SCHEMA)
        conn.commit()
    finally:
        conn.close()


class _TenantPool:
    """Bounded set of read-only connections to one tenant database."""

    def __init__(self, path: Path, size: int):
        self.path = path
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._slots = threading.BoundedSemaphore(size)

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                f"file:{self.path}?mode=ro", uri=True, check_same_thread=False
            )
        except sqlite3.Error as e:
            raise DataFetchError(
                f"Cannot open tenant database: {e}", context={"path": str(self.path)}
            ) from e
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self, wait_seconds: float) -> Iterator[sqlite3.Connection]:
        if not self._slots.acquire(timeout=wait_seconds):
            raise QueryTimeoutError(
                "Timed out waiting for a database connection",
                context={"path": str(self.path)},
            )
        try:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                conn = self._connect()
            try:
                yield conn
            finally:
                self._idle.put(conn)
        finally:
            self._slots.release()

    def close(self) -> None:
        while True:
            try:
                self._idle.get_nowait().close()
            except queue.Empty:
                return


class SQLiteQueryExecutor:
    """Runs whitelisted templates against ``tenant_db_template`` databases.

    Each tenant gets its own bounded connection pool. Every query carries a
    deadline enforced through SQLite's progress handler.

    Usage:
        executor = SQLiteQueryExecutor("data/tenants/{tenant_id}.sqlite")
        rows = executor.execute("brand-1", "OVERALL_SUMMARY", window.as_params())
    """

    def __init__(
        self,
        tenant_db_template: str,
        timeout_ms: int = 5000,
        pool_size: int = 10,
    ):
        if "{tenant_id}" not in tenant_db_template:
            raise ValueError("tenant_db_template must contain a {tenant_id} placeholder")
        self.tenant_db_template = tenant_db_template
        self.timeout_ms = timeout_ms
        self.pool_size = pool_size
        self._pools: Dict[str, _TenantPool] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any) -> "SQLiteQueryExecutor":
        return cls(
            settings.tenant_db_template,
            timeout_ms=settings.query_timeout_ms,
            pool_size=settings.pool_size,
        )

    def database_path(self, tenant_id: str) -> Path:
        if not tenant_id or "/" in tenant_id or "\\" in tenant_id or tenant_id.startswith("."):
            raise DataFetchError(f"Invalid tenant id: {tenant_id!r}")
        return Path(self.tenant_db_template.format(tenant_id=tenant_id))

    def _pool(self, tenant_id: str) -> _TenantPool:
        with self._lock:
            pool = self._pools.get(tenant_id)
            if pool is None:
                path = self.database_path(tenant_id)
                if not path.exists():
                    raise DataFetchError(
                        f"No database for tenant {tenant_id}", context={"path": str(path)}
                    )
                pool = _TenantPool(path, self.pool_size)
                self._pools[tenant_id] = pool
            return pool

    def execute(
        self,
        tenant_id: str,
        template_name: str,
        params: Sequence[Any],
        filters: Sequence[QueryFilter] = (),
        group_column: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Run a named template for a tenant.

        Raises:
            UnknownTemplateError: Template is not whitelisted.
            InvalidFilterError: A filter column is not a plain identifier.
            QueryTimeoutError: The query ran past ``timeout_ms``.
            DataFetchError: Any other database failure.
        """
        template = get_template(template_name)
        sql, bound = template.render(params, filters, group_column=group_column)
        pool = self._pool(tenant_id)

        timeout_seconds = self.timeout_ms / 1000
        deadline = time.monotonic() + timeout_seconds
        logger.debug(
            "Executing template %s",
            template_name,
            extra={"tenant_id": tenant_id, "params": bound},
        )

        with pool.connection(timeout_seconds) as conn:
            # A non-zero return from the handler interrupts the statement.
            conn.set_progress_handler(lambda: int(time.monotonic() > deadline), _PROGRESS_INTERVAL)
            try:
                rows = conn.execute(sql, bound).fetchall()
            except sqlite3.OperationalError as e:
                if "interrupted" in str(e):
                    raise QueryTimeoutError(
                        f"Query {template_name} exceeded {self.timeout_ms}ms",
                        context={"tenant_id": tenant_id},
                    ) from e
                raise DataFetchError(
                    f"Query {template_name} failed: {e}", context={"tenant_id": tenant_id}
                ) from e
            except sqlite3.Error as e:
                raise DataFetchError(
                    f"Query {template_name} failed: {e}", context={"tenant_id": tenant_id}
                ) from e
            finally:
                conn.set_progress_handler(None, 0)

        return [dict(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            for pool in self._pools.values():
                pool.close()
            self._pools.clear()
