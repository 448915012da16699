"""Shared API helpers."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from flask import jsonify

from rcaflow.config.settings import Settings


def cors_origins(settings: Settings) -> list[str]:
    return [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]


def error_response(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({"status": "error", "message": message}), status


def tenant_from_body(body: Mapping[str, Any]) -> Optional[str]:
    """Tenant id from ``tenant_id``, ``brand_id`` or ``context.brand_id``."""
    tenant = body.get("tenant_id") or body.get("brand_id")
    if not tenant and isinstance(body.get("context"), Mapping):
        tenant = body["context"].get("tenant_id") or body["context"].get("brand_id")
    return str(tenant) if tenant else None


def workflow_definition(body: Mapping[str, Any], workflow_id: str) -> Dict[str, Any]:
    """Workflow fields of a create request."""
    definition: Dict[str, Any] = {"id": workflow_id, "nodes": body.get("nodes")}
    for key in ("workflow_type", "description", "trigger", "context", "start_node"):
        if body.get(key) is not None:
            definition[key] = body[key]
    return definition
