"""Node executor registry.

One executor per NodeType. The mapping must cover the whole enum; this is
checked when the package is imported.
"""

from __future__ import annotations

from typing import Dict, Optional

from rcaflow.core.exceptions import ConfigurationError
from rcaflow.core.workflow import NodeType

from . import branch, breakdown, composite, confidence, drill_down, insight, metric_compare, terminal, validation
from .base import NodeEnvironment, NodeExecutor

NODE_EXECUTORS: Dict[NodeType, NodeExecutor] = {
    NodeType.VALIDATION: validation.execute,
    NodeType.METRIC_COMPARE: metric_compare.execute,
    NodeType.BRANCH: branch.execute,
    NodeType.RECURSIVE_DIMENSION_BREAKDOWN: breakdown.execute,
    NodeType.DRILL_DOWN: drill_down.execute,
    NodeType.COMPOSITE: composite.execute,
    NodeType.CONFIDENCE: confidence.execute,
    NodeType.INSIGHT: insight.execute,
    NodeType.SUPPRESSION: terminal.suppress,
    NodeType.DEFER: terminal.defer,
}

_unregistered = [t.value for t in NodeType if t not in NODE_EXECUTORS]
if _unregistered:
    raise ConfigurationError(f"Node types without an executor: {', '.join(_unregistered)}")


def get_node_executor(node_type: str) -> Optional[NodeExecutor]:
    """Executor for a node type name, or None if the type is unknown."""
    try:
        return NODE_EXECUTORS.get(NodeType(node_type))
    except ValueError:
        return None


__all__ = ["NODE_EXECUTORS", "NodeEnvironment", "NodeExecutor", "get_node_executor"]
