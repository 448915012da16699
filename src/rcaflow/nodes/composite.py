"""composite node: jump into a sub-graph."""

from __future__ import annotations

from rcaflow.core.context import ExecutionContext
from rcaflow.core.exceptions import ExecutionError
from rcaflow.core.results import Advance, Transition
from rcaflow.core.workflow import CompositeNode
from rcaflow.nodes.base import NodeEnvironment


def execute(node: CompositeNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    entry_point = node.entry_point
    if entry_point is None:
        raise ExecutionError(f'Composite node "{node.id}" has no entry point')
    return Advance(entry_point)
