"""rcaflow - Rule-based root-cause analysis workflows for metric alerts."""

from typing import TYPE_CHECKING

__all__ = ["Settings", "ExecutionEngine", "WorkflowValidator"]

if TYPE_CHECKING:
    from .config.settings import Settings
    from .execution.engine import ExecutionEngine
    from .validation.workflow_validator import WorkflowValidator


def __getattr__(name: str):
    if name == "Settings":
        from .config.settings import Settings

        return Settings
    if name == "ExecutionEngine":
        from .execution.engine import ExecutionEngine

        return ExecutionEngine
    if name == "WorkflowValidator":
        from .validation.workflow_validator import WorkflowValidator

        return WorkflowValidator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
