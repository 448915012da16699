"""confidence node: score how much the evidence can be trusted."""

from __future__ import annotations

from typing import List

from rcaflow.core.context import ExecutionContext, Finding
from rcaflow.core.results import Transition
from rcaflow.core.workflow import ConfidenceNode
from rcaflow.nodes.base import NodeEnvironment, follow
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

BASE_CONFIDENCE = 0.5
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.99
LOW_ORDER_VOLUME = 50


def score_confidence(causes: List[Finding], current_orders: float) -> float:
    """Confidence in [0.1, 0.99], rounded to two places.

    Args:
        causes: Root causes, strongest first.
        current_orders: Order volume in the current window.
    """
    score = BASE_CONFIDENCE

    if causes:
        top = causes[0]
        if top.impact_score > 50:
            score += 0.3
        elif top.impact_score > 20:
            score += 0.15

        if len(causes) == 1:
            score += 0.1
        elif top.impact_score > causes[1].impact_score * 2:
            score += 0.1
    else:
        score -= 0.2

    if current_orders < LOW_ORDER_VOLUME:
        score -= 0.1

    score = min(max(score, MIN_CONFIDENCE), MAX_CONFIDENCE)
    return round(score, 2)


def execute(node: ConfidenceNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    orders = context.derived.orders
    current_orders = orders.current if orders is not None else 0.0

    confidence = score_confidence(context.analysis_results.root_causes, current_orders)
    context.analysis_results.confidence = confidence
    logger.info("Confidence scored at %.2f", confidence, extra={"node_id": node.id})
    return follow(node)
