"""branch node: route on derived metrics."""

from __future__ import annotations

from rcaflow.core.context import ExecutionContext
from rcaflow.core.results import Advance, Suppressed, Transition
from rcaflow.core.workflow import BranchNode, TerminateAction
from rcaflow.nodes.base import NodeEnvironment
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

NO_MATCHING_ROUTE = "no_matching_route"


def execute(node: BranchNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    """Take the first rule that holds, in declaration order.

    With no match the ``default_next`` node is taken. A terminate action, or no
    default at all, ends the run as suppressed.
    """
    for rule in node.effective_rules:
        if env.conditions.evaluate(rule.condition, context):
            logger.info("Branch %s matched rule -> %s", node.id, rule.next)
            return Advance(rule.next)

    default = node.default_next
    if isinstance(default, str):
        logger.info("Branch %s took default -> %s", node.id, default)
        return Advance(default)

    reason = default.reason if isinstance(default, TerminateAction) else None
    logger.info("Branch %s terminated", node.id)
    return Suppressed(reason or NO_MATCHING_ROUTE)
