"""Current-vs-baseline comparison of one data dimension."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from rcaflow.core.context import Finding
from rcaflow.core.interfaces import EqualityFilter, HourOfDayFilter, QueryExecutor, QueryFilter
from rcaflow.core.windows import TimeWindow
from rcaflow.queries.executor import fetch_concurrently
from rcaflow.queries.templates import dimension_spec
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

# Columns that carry measures rather than the group key
METRIC_COLUMNS = frozenset(
    {"count", "order_count", "percentage", "pending_rate", "pending_orders", "total_orders"}
)

RATE_INCREASE_THRESHOLD = 5.0
MIN_BASELINE_COUNT = 10
VOLUME_DROP_THRESHOLD = -15.0


@dataclass
class Segment:
    """One normalised group of a distribution."""
    value: Any
    count: float
    rate: Optional[float] = None


def normalize_rows(rows: Iterable[Mapping[str, Any]], periods: int = 1) -> List[Segment]:
    """Convert raw grouped rows into segments.

    The group key is the first column that is not a known measure. Counts are
    divided by ``periods`` so averaged windows compare against a single slice;
    rates are already ratios and are left alone.
    """
    segments: List[Segment] = []
    for row in rows:
        key = next((k for k in row.keys() if k not in METRIC_COLUMNS), None)
        raw_count = row.get("order_count", row.get("count", row.get("total_orders")))
        count = float(raw_count or 0) / max(periods, 1)
        rate = row.get("pending_rate")
        segments.append(
            Segment(
                value=row[key] if key is not None else "unknown",
                count=count,
                rate=float(rate) if rate is not None else None,
            )
        )
    return segments


def _format_count(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"


def score_segment(dimension: str, current: Segment, baseline: Segment) -> Optional[Finding]:
    """Score one matched pair; None when neither rule fires.

    Rules, first match wins:
    1. Both sides carry a rate and it rose by more than 5 points
    2. Baseline volume above 10 and volume fell by more than 15%
    """
    if current.rate is not None and baseline.rate is not None:
        diff = current.rate - baseline.rate
        if diff > RATE_INCREASE_THRESHOLD:
            return Finding(
                dimension=dimension,
                value=current.value,
                change=f"Rate increased from {baseline.rate:.1f}% to {current.rate:.1f}%",
                impact_score=diff,
            )

    if baseline.count > MIN_BASELINE_COUNT:
        pct_change = (current.count - baseline.count) / baseline.count * 100
        if pct_change < VOLUME_DROP_THRESHOLD:
            return Finding(
                dimension=dimension,
                value=current.value,
                change=(
                    f"Volume dropped {abs(pct_change):.1f}% "
                    f"({_format_count(baseline.count)} -> {_format_count(current.count)})"
                ),
                impact_score=abs(pct_change),
            )

    return None


def compare_distributions(
    dimension: str, current: Sequence[Segment], baseline: Sequence[Segment]
) -> List[Finding]:
    """Match current groups to baseline groups by value and score each pair."""
    by_value: Dict[Any, Segment] = {}
    for segment in baseline:
        by_value.setdefault(segment.value, segment)

    findings: List[Finding] = []
    for segment in current:
        match = by_value.get(segment.value)
        if match is None:
            continue
        finding = score_segment(dimension, segment, match)
        if finding is not None:
            findings.append(finding)

    # sorted() is stable, so ties keep input order
    return sorted(findings, key=lambda f: f.impact_score, reverse=True)


class DimensionAnalyzer:
    """Fetches and compares a dimension's distribution across two windows.

    Usage:
        analyzer = DimensionAnalyzer(query_executor)
        findings = analyzer.analyze("brand-1", "payment_gateway", current, baseline)
    """

    def __init__(self, query_executor: QueryExecutor):
        self.query_executor = query_executor

    def analyze(
        self,
        tenant_id: str,
        dimension: str,
        current: TimeWindow,
        baseline: TimeWindow,
        filters: Sequence[EqualityFilter] = (),
    ) -> List[Finding]:
        """Analyse one dimension.

        Args:
            tenant_id: Tenant whose data is queried.
            dimension: Dimension name (catalogued or a raw order column).
            current: Current window.
            baseline: Baseline window; averaged windows are divided by periods.
            filters: Equality filters applied to both fetches.

        Returns:
            Findings sorted by descending impact. Empty when the dimension
            could not be fetched or compared.
        """
        spec = dimension_spec(dimension)
        logger.info(
            "Analyzing dimension %s",
            dimension,
            extra={"tenant_id": tenant_id, "filters": [f"{f.column}={f.value}" for f in filters]},
        )

        try:
            current_rows, baseline_rows = fetch_concurrently(
                lambda: self._fetch(tenant_id, spec.template, current, filters, spec.group_column),
                lambda: self._fetch(tenant_id, spec.template, baseline, filters, spec.group_column),
            )
            return compare_distributions(
                dimension,
                normalize_rows(current_rows, current.periods),
                normalize_rows(baseline_rows, baseline.periods),
            )
        except Exception:
            # One failing dimension must not abort a multi-dimension breakdown
            logger.exception("Error analyzing dimension %s", dimension, extra={"tenant_id": tenant_id})
            return []

    def _fetch(
        self,
        tenant_id: str,
        template: str,
        window: TimeWindow,
        filters: Sequence[EqualityFilter],
        group_column: Optional[str],
    ) -> List[Dict[str, Any]]:
        query_filters: List[QueryFilter] = list(filters)
        if window.hour_of_day is not None:
            query_filters.append(HourOfDayFilter(window.hour_of_day))
        return self.query_executor.execute(
            tenant_id,
            template,
            window.as_params(),
            query_filters,
            group_column=group_column,
        )
