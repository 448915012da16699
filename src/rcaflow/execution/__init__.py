"""Workflow execution: condition evaluation and the node-dispatch engine."""

from typing import TYPE_CHECKING

__all__ = ["ExecutionEngine", "ConditionEvaluator"]

if TYPE_CHECKING:
    from .conditions import ConditionEvaluator
    from .engine import ExecutionEngine


def __getattr__(name: str):
    if name == "ConditionEvaluator":
        from .conditions import ConditionEvaluator

        return ConditionEvaluator
    if name == "ExecutionEngine":
        from .engine import ExecutionEngine

        return ExecutionEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
