"""Shared test fixtures.

The fake query executor answers by (template, window start) so tests can
script current and baseline rows independently. The default alert covers
2026-01-15 10:00-11:00 UTC and compares against the previous day's same
hour; the clock is fixed at 12:00 the same day.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from rcaflow.config.settings import Settings
from rcaflow.core.context import ExecutionContext
from rcaflow.core.workflow import Alert, Tenant, Workflow

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

CURRENT_WINDOW = "2026-01-15T10:00:00Z|2026-01-15T11:00:00Z"
CURRENT_START = "2026-01-15 10:00:00"
BASELINE_START = "2026-01-14 10:00:00"

TENANT_ID = "brand-42"


@dataclass
class QueryCall:
    tenant_id: str
    template_name: str
    params: Tuple[Any, ...]
    filters: Tuple[Any, ...]
    group_column: Optional[str] = None


@dataclass
class FakeQueryExecutor:
    """Scripted QueryExecutor keyed by (template, first window parameter)."""
    responses: Dict[Tuple[str, Optional[str]], List[Dict[str, Any]]] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)
    calls: List[QueryCall] = field(default_factory=list)

    def add(self, template: str, start: Optional[str], rows: List[Dict[str, Any]]) -> None:
        """Register rows for a template; ``start=None`` answers any window."""
        self.responses[(template, start)] = rows

    def fail(self, template: str, error: Exception) -> None:
        self.errors[template] = error

    def execute(
        self,
        tenant_id: str,
        template_name: str,
        params: Sequence[Any],
        filters: Sequence[Any] = (),
        group_column: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        self.calls.append(
            QueryCall(tenant_id, template_name, tuple(params), tuple(filters), group_column)
        )
        if template_name in self.errors:
            raise self.errors[template_name]
        rows = self.responses.get((template_name, params[0]))
        if rows is None:
            rows = self.responses.get((template_name, None), [])
        return copy.deepcopy(rows)

    def calls_for(self, template_name: str) -> List[QueryCall]:
        return [c for c in self.calls if c.template_name == template_name]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def settings() -> Settings:
    return Settings(
        max_nodes=50,
        max_depth=20,
        max_steps=50,
        min_window_minutes=30,
        workflow_db_path=":memory:",
        rate_limit_enabled=False,
    )


@pytest.fixture
def query_executor() -> FakeQueryExecutor:
    return FakeQueryExecutor()


@pytest.fixture
def alert() -> Alert:
    return Alert(
        metric="cvr",
        drop_pct=25.0,
        current_window=CURRENT_WINDOW,
        baseline_window="prev_day_same_hour",
    )


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(tenant_id=TENANT_ID)


def build_context(alert: Alert, tenant: Tenant, workflow: Optional[Workflow] = None) -> ExecutionContext:
    return ExecutionContext.create(
        alert, tenant, workflow or Workflow(id="wf", nodes=[]), now=FIXED_NOW
    )


@pytest.fixture
def context(alert: Alert, tenant: Tenant) -> ExecutionContext:
    return build_context(alert, tenant)


def sample_workflow_definition() -> Dict[str, Any]:
    """Full diagnosis graph: gate, funnel, route, breakdown, drill, score, report."""
    return {
        "id": "cvr-drop",
        "workflow_type": "cvr_drop",
        "description": "Diagnose conversion-rate drops",
        "nodes": [
            {"id": "validate", "type": "validation", "min_drop_pct": 10, "next": "compare"},
            {"id": "compare", "type": "metric_compare", "next": "route"},
            {
                "id": "route",
                "type": "branch",
                "rules": [{"if": "sessions_delta_pct < -20", "next": "traffic_drop"}],
                "default_next": "breakdown",
            },
            {"id": "traffic_drop", "type": "suppression", "reason": "traffic_drop"},
            {
                "id": "breakdown",
                "type": "recursive_dimension_breakdown",
                "dimensions": ["payment_gateway", "discount_code"],
                "next": "drill",
            },
            {"id": "drill", "type": "drill_down", "dimension": "product", "next": "score"},
            {"id": "score", "type": "confidence", "next": "report"},
            {"id": "report", "type": "insight"},
        ],
    }


@pytest.fixture
def workflow_definition() -> Dict[str, Any]:
    return sample_workflow_definition()


def script_gateway_failure(executor: FakeQueryExecutor) -> None:
    """Orders fall 100 -> 60, driven by the razorpay gateway and one product."""
    executor.add(
        "OVERALL_SUMMARY",
        CURRENT_START,
        [{"sessions": 1000, "orders": 60, "gmv": 6000.0, "cvr": 6.0}],
    )
    executor.add(
        "OVERALL_SUMMARY",
        BASELINE_START,
        [{"sessions": 1000, "orders": 100, "gmv": 10000.0, "cvr": 10.0}],
    )
    executor.add(
        "PAYMENT_GATEWAY_DISTRIBUTION",
        CURRENT_START,
        [{"gateway": "razorpay", "order_count": 10}, {"gateway": "cod", "order_count": 50}],
    )
    executor.add(
        "PAYMENT_GATEWAY_DISTRIBUTION",
        BASELINE_START,
        [{"gateway": "razorpay", "order_count": 50}, {"gateway": "cod", "order_count": 50}],
    )
    executor.add("DISCOUNT_CODE_BREAKDOWN", CURRENT_START, [{"discount_codes": "SAVE10", "order_count": 20}])
    executor.add("DISCOUNT_CODE_BREAKDOWN", BASELINE_START, [{"discount_codes": "SAVE10", "order_count": 22}])
    executor.add(
        "PRODUCT_CONVERSION_CONTRIBUTION",
        CURRENT_START,
        [{"product_name": "Blue Shirt", "order_count": 4}],
    )
    executor.add(
        "PRODUCT_CONVERSION_CONTRIBUTION",
        BASELINE_START,
        [{"product_name": "Blue Shirt", "order_count": 30}],
    )
