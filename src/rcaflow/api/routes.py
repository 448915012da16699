"""HTTP routes for the API server."""

from __future__ import annotations

import time
from typing import Any

from flask import Flask, jsonify, request

from rcaflow.core.exceptions import RCAFlowError, WorkflowValidationError
from rcaflow.core.interfaces import ExecutionRecord, WorkflowStore
from rcaflow.execution.engine import ExecutionEngine
from rcaflow.utils.logging import get_logger
from rcaflow.validation.workflow_validator import WorkflowValidator

from .common import error_response, tenant_from_body, workflow_definition

logger = get_logger("rcaflow.api")


def register_routes(
    app: Flask,
    *,
    store: WorkflowStore,
    engine: ExecutionEngine,
    validator: WorkflowValidator,
) -> None:
    @app.before_request
    def log_request() -> None:
        logger.info("HTTP %s %s from %s", request.method, request.path, request.remote_addr)

    @app.errorhandler(RCAFlowError)
    def handle_rcaflow_error(exc: RCAFlowError) -> Any:
        logger.error("Request failed: %s", exc)
        return error_response(exc.message, 500)

    @app.get("/health")
    def health() -> Any:
        return jsonify({"status": "ok", "engine": "active"})

    @app.post("/api/workflows")
    def create_workflow() -> Any:
        body = request.get_json(silent=True) or {}
        tenant_id = tenant_from_body(body)
        workflow_id = body.get("workflow_id")
        if not tenant_id or not workflow_id or not body.get("nodes"):
            return error_response("Missing required fields: tenant_id, workflow_id, nodes", 400)

        try:
            workflow = validator.validate(workflow_definition(body, str(workflow_id)))
        except WorkflowValidationError as exc:
            return error_response(f"Invalid workflow: {exc.message}", 400)

        version = store.save(tenant_id, workflow, created_by=body.get("created_by") or "api_user")
        logger.info("Created workflow %s v%s", workflow.id, version, extra={"tenant_id": tenant_id})
        return jsonify({"status": "success", "workflow_id": workflow.id, "version": version})

    @app.get("/api/workflows/<tenant_id>/<workflow_id>")
    def get_workflow(tenant_id: str, workflow_id: str) -> Any:
        workflow = store.get_latest_active(tenant_id, workflow_id)
        if workflow is None:
            return error_response("Workflow not found or inactive", 404)
        return jsonify(
            {
                "status": "success",
                "workflow": workflow.model_dump(mode="json", by_alias=True, exclude_none=True),
                "versions": store.list_versions(tenant_id, workflow_id),
            }
        )

    @app.get("/api/workflows/<tenant_id>/<workflow_id>/executions")
    def list_executions(tenant_id: str, workflow_id: str) -> Any:
        limit = request.args.get("limit", default=50, type=int)
        records = store.list_executions(tenant_id, workflow_id, limit=limit)
        return jsonify(
            {
                "executions": [
                    {
                        "id": r.id,
                        "workflow_version": r.workflow_version,
                        "status": r.status,
                        "executed_by": r.executed_by,
                        "executed_at": r.executed_at,
                        "execution_time_ms": r.execution_time_ms,
                    }
                    for r in records
                ],
                "count": len(records),
            }
        )

    @app.post("/api/workflows/run")
    def run_workflow() -> Any:
        body = request.get_json(silent=True) or {}
        tenant_id = tenant_from_body(body)
        workflow_id = body.get("workflow_id")
        alert_payload = body.get("alert_payload")
        if not tenant_id or not workflow_id or not alert_payload:
            return error_response("Missing required fields: tenant_id, workflow_id, alert_payload", 400)

        workflow = store.get_latest_active(tenant_id, str(workflow_id))
        if workflow is None:
            return error_response("Workflow not found or inactive", 404)

        started = time.perf_counter()
        result = engine.execute(alert_payload, {"tenant_id": tenant_id}, workflow)
        duration_ms = int((time.perf_counter() - started) * 1000)
        analysis_result = result.to_dict()

        store.record_execution(
            ExecutionRecord(
                workflow_id=workflow.id,
                workflow_version=workflow.version,
                tenant_id=tenant_id,
                alert_payload=alert_payload,
                result=analysis_result,
                executed_by=body.get("run_by") or "system",
                status=result.status.value,
                execution_time_ms=duration_ms,
            )
        )

        return jsonify(
            {
                "status": "success",
                "workflow_id": workflow.id,
                "version": workflow.version,
                "analysis_result": analysis_result,
            }
        )

    @app.post("/analyze")
    def analyze() -> Any:
        body = request.get_json(silent=True) or {}
        alert = body.get("alert")
        tenant = body.get("tenant") or body.get("brand")
        workflow = body.get("workflow")
        if not alert or not tenant or not workflow:
            return error_response("Missing required fields: alert, tenant, or workflow", 400)

        result = engine.execute(alert, tenant, workflow)
        return jsonify(result.to_dict())
