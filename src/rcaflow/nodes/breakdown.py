"""recursive_dimension_breakdown node: find which dimensions explain the drop."""

from __future__ import annotations

from dataclasses import replace
from typing import List

from rcaflow.core.context import ExecutionContext, Finding
from rcaflow.core.results import Transition
from rcaflow.core.workflow import BreakdownNode
from rcaflow.nodes.base import NodeEnvironment, follow, resolve_run_windows
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

STRONG_IMPACT = 40.0
DOMINANT_IMPACT = 60.0
RELATIVE_IMPACT_PCT = 20.0
DEFAULT_DROP_MAGNITUDE = 100.0


def overall_drop_magnitude(context: ExecutionContext) -> float:
    """Size of the overall drop that findings are weighed against."""
    orders_delta = context.derived.pct_change("orders")
    if orders_delta:
        return abs(orders_delta)
    if context.alert.drop_pct:
        return abs(context.alert.drop_pct)
    return DEFAULT_DROP_MAGNITUDE


def is_valid_cause(finding: Finding, drop_magnitude: float) -> bool:
    relative_impact = finding.impact_score / drop_magnitude * 100
    return finding.impact_score > STRONG_IMPACT or relative_impact > RELATIVE_IMPACT_PCT


def execute(node: BreakdownNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    current, baseline = resolve_run_windows(context, env)
    tenant_id = context.tenant.tenant_id

    findings: List[Finding] = []
    for dimension in node.dimensions:
        findings.extend(env.analyzer.analyze(tenant_id, dimension, current, baseline))
    findings.sort(key=lambda f: f.impact_score, reverse=True)

    drop_magnitude = overall_drop_magnitude(context)
    valid = [f for f in findings if is_valid_cause(f, drop_magnitude)]

    results = context.analysis_results
    if not valid:
        logger.info("No dominant root causes found (all signals too weak)")
    else:
        top = valid[0]
        dominant = top.impact_score > DOMINANT_IMPACT or (
            len(valid) == 1 and top.impact_score > STRONG_IMPACT
        )
        if dominant:
            valid[0] = replace(top, dominant=True)
            logger.info(
                "Dominant cause confirmed: %s (impact %.1f)", top.value, top.impact_score
            )
        elif len(valid) > 1:
            logger.info("Mixed factors detected (no single dominant cause)")
            results.mixed_factors = True

    results.root_causes = valid
    return follow(node)
