"""metric_compare node: current vs baseline funnel metrics."""

from __future__ import annotations

from typing import Any, Dict, List

from rcaflow.core.context import ExecutionContext, MetricDelta
from rcaflow.core.interfaces import HourOfDayFilter, QueryFilter
from rcaflow.core.results import Deferred, Transition
from rcaflow.core.windows import TimeWindow
from rcaflow.core.workflow import DEFAULT_FUNNEL_METRICS, MetricCompareNode
from rcaflow.nodes.base import NodeEnvironment, follow, resolve_run_windows
from rcaflow.queries.executor import fetch_concurrently
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

SUMMARY_TEMPLATE = "OVERALL_SUMMARY"

# Ratios are not averaged over baseline periods
RATE_METRICS = frozenset({"cvr"})


def pct_change(current: float, baseline: float) -> float:
    """Percentage change; a zero baseline yields 0."""
    if baseline == 0:
        return 0.0
    return (current - baseline) / baseline * 100


def _fetch_summary(env: NodeEnvironment, tenant_id: str, window: TimeWindow) -> Dict[str, Any]:
    filters: List[QueryFilter] = []
    if window.hour_of_day is not None:
        filters.append(HourOfDayFilter(window.hour_of_day))
    rows = env.query_executor.execute(tenant_id, SUMMARY_TEMPLATE, window.as_params(), filters)
    return rows[0] if rows else {}


def _value(row: Dict[str, Any], metric: str) -> float:
    return float(row.get(metric) or 0)


def execute(node: MetricCompareNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    current, baseline = resolve_run_windows(context, env)
    tenant_id = context.tenant.tenant_id

    current_row, baseline_row = fetch_concurrently(
        lambda: _fetch_summary(env, tenant_id, current),
        lambda: _fetch_summary(env, tenant_id, baseline),
    )

    for metric in node.metrics or DEFAULT_FUNNEL_METRICS:
        current_value = _value(current_row, metric)
        baseline_value = _value(baseline_row, metric)
        if metric not in RATE_METRICS:
            current_value /= current.periods
            baseline_value /= baseline.periods
        context.derived.set(
            metric,
            MetricDelta(
                current=current_value,
                baseline=baseline_value,
                pct_change=pct_change(current_value, baseline_value),
            ),
        )

    logger.info(
        "Funnel deltas computed",
        extra={"node_id": node.id, "derived": context.derived.to_dict()},
    )

    if node.min_sessions is not None and _value(current_row, "sessions") < node.min_sessions:
        logger.info("Sessions below minimum sample size %s", node.min_sessions)
        return Deferred("insufficient_data")
    if node.min_orders is not None and _value(current_row, "orders") < node.min_orders:
        logger.info("Orders below minimum sample size %s", node.min_orders)
        return Deferred("insufficient_data")

    return follow(node)
