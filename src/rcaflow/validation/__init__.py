"""Workflow graph validation."""

from rcaflow.validation.workflow_validator import WorkflowValidator, validate_workflow

__all__ = ["WorkflowValidator", "validate_workflow"]
