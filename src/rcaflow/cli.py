"""Command-line entrypoint: validate and run workflows, or serve the API."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from rcaflow.config.settings import get_settings
from rcaflow.core.exceptions import WorkflowValidationError
from rcaflow.core.results import RunStatus
from rcaflow.utils.logging import configure_logging


def _load_json(path: str) -> Any:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def cmd_validate(args: argparse.Namespace) -> int:
    from rcaflow.validation.workflow_validator import WorkflowValidator

    validator = WorkflowValidator.from_settings(get_settings())
    try:
        workflow = validator.validate(_load_json(args.file))
    except WorkflowValidationError as e:
        print(f"Invalid workflow: {e.message}", file=sys.stderr)
        return 1
    print(f"OK: {workflow.id} ({len(workflow.nodes)} nodes, start={workflow.resolve_start_node()})")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    from rcaflow.execution.engine import ExecutionEngine
    from rcaflow.queries.executor import SQLiteQueryExecutor

    settings = get_settings()
    executor = SQLiteQueryExecutor.from_settings(settings)
    if args.tenant_db:
        executor = SQLiteQueryExecutor(args.tenant_db, settings.query_timeout_ms, settings.pool_size)

    engine = ExecutionEngine(executor, settings)
    result = engine.execute(
        _load_json(args.alert),
        {"tenant_id": args.tenant},
        _load_json(args.workflow),
    )
    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 1 if result.status == RunStatus.ERROR else 0


def cmd_serve(args: argparse.Namespace) -> int:
    from rcaflow.api.app import create_app

    settings = get_settings()
    app = create_app(settings=settings)
    app.run(host=args.host or settings.api_host, port=args.port or settings.api_port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rcaflow", description="Root-cause analysis workflows")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Validate a workflow definition file")
    validate.add_argument("file", help="Path to workflow JSON")
    validate.set_defaults(func=cmd_validate)

    run = sub.add_parser("run", help="Run a workflow for one alert")
    run.add_argument("--workflow", required=True, help="Path to workflow JSON")
    run.add_argument("--alert", required=True, help="Path to alert JSON")
    run.add_argument("--tenant", required=True, help="Tenant id")
    run.add_argument(
        "--tenant-db",
        help="Tenant database path template (must contain {tenant_id})",
    )
    run.set_defaults(func=cmd_run)

    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
