"""suppression and defer nodes: end a run without an insight."""

from __future__ import annotations

from rcaflow.core.context import ExecutionContext
from rcaflow.core.results import Deferred, Suppressed, Transition
from rcaflow.core.workflow import DeferNode, SuppressionNode
from rcaflow.nodes.base import NodeEnvironment
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SUPPRESSION_REASON = "unknown"
DEFAULT_DEFER_REASON = "insufficient_data"


def suppress(node: SuppressionNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    reason = node.reason or DEFAULT_SUPPRESSION_REASON
    logger.info("Alert suppressed: %s", reason, extra={"node_id": node.id})
    return Suppressed(reason)


def defer(node: DeferNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    reason = node.reason or DEFAULT_DEFER_REASON
    logger.info("Analysis deferred: %s", reason, extra={"node_id": node.id})
    return Deferred(reason)
