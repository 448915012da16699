"""Flask app factory for the API server."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from rcaflow.config.settings import Settings, get_settings
from rcaflow.core.interfaces import QueryExecutor, WorkflowStore
from rcaflow.execution.engine import ExecutionEngine
from rcaflow.queries.executor import SQLiteQueryExecutor
from rcaflow.storage.repository import SQLiteWorkflowStore
from rcaflow.utils.logging import configure_logging
from rcaflow.validation.workflow_validator import WorkflowValidator

from .common import cors_origins
from .routes import register_routes


def create_app(
    *,
    store: Optional[WorkflowStore] = None,
    query_executor: Optional[QueryExecutor] = None,
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Flask:
    """Build the API app.

    Args:
        store: Workflow store; SQLite at ``workflow_db_path`` if omitted.
        query_executor: Tenant query executor; SQLite if omitted.
        settings: Settings; get_settings() if omitted.
        clock: Source of "now" for the engine.
    """
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)

    app = Flask(__name__)
    CORS(app, supports_credentials=True, origins=cors_origins(settings))
    # Per-app limiter so separately built apps do not share counters
    Limiter(
        get_remote_address,
        app=app,
        default_limits=[settings.api_rate_limit],
        storage_uri="memory://",
        enabled=settings.rate_limit_enabled,
    )

    engine = ExecutionEngine(
        query_executor or SQLiteQueryExecutor.from_settings(settings),
        settings,
        clock=clock,
    )
    register_routes(
        app,
        store=store or SQLiteWorkflowStore(settings.workflow_db_path),
        engine=engine,
        validator=WorkflowValidator.from_settings(settings),
    )
    return app
