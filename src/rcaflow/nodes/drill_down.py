"""drill_down node: look inside the top root cause."""

from __future__ import annotations

from rcaflow.core.context import ExecutionContext
from rcaflow.core.interfaces import EqualityFilter
from rcaflow.core.results import Transition
from rcaflow.core.workflow import DrillDownNode
from rcaflow.nodes.base import NodeEnvironment, follow, resolve_run_windows
from rcaflow.queries.templates import dimension_spec
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

MIN_DRILL_IMPACT = 40.0


def execute(node: DrillDownNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    """Re-analyse ``node.dimension`` filtered to the top cause's value.

    Skipped when there is no top cause or its impact is not above 40.
    """
    results = context.analysis_results
    top = results.top_cause
    if top is None:
        logger.info("No root causes found; skipping drill-down")
        return follow(node)
    if top.impact_score <= MIN_DRILL_IMPACT:
        logger.info("Top cause impact too low (%.1f) for drill-down", top.impact_score)
        return follow(node)

    column = dimension_spec(top.dimension).filter_column
    logger.info(
        "Drilling down: analysing %s where %s=%s", node.dimension, column, top.value
    )

    current, baseline = resolve_run_windows(context, env)
    findings = env.analyzer.analyze(
        context.tenant.tenant_id,
        node.dimension,
        current,
        baseline,
        [EqualityFilter(column, top.value)],
    )

    if findings:
        drilled = findings[0]
        results.root_causes.append(drilled)
        results.drill_down_path.append(f"{top.dimension}={top.value}")
        logger.info(
            "Drill-down found specific factor: %s (impact %.1f)",
            drilled.value,
            drilled.impact_score,
        )
    else:
        logger.info("Drill-down yielded no specific sub-factors")

    return follow(node)
