"""Tests for gating, routing and terminal node executors."""

import pytest

from conftest import BASELINE_START, CURRENT_START, FIXED_NOW, build_context
from rcaflow.analysis.dimensions import DimensionAnalyzer
from rcaflow.core.context import MetricDelta
from rcaflow.core.interfaces import HourOfDayFilter
from rcaflow.core.results import Advance, Deferred, Done, Suppressed
from rcaflow.core.workflow import (
    Alert,
    BranchNode,
    CompositeNode,
    DeferNode,
    MetricCompareNode,
    NodeType,
    SuppressionNode,
    ValidationNode,
)
from rcaflow.nodes import NODE_EXECUTORS, get_node_executor
from rcaflow.nodes import branch, composite, metric_compare, terminal, validation
from rcaflow.nodes.base import NodeEnvironment, follow


@pytest.fixture
def env(query_executor, settings, clock):
    return NodeEnvironment(
        query_executor=query_executor,
        analyzer=DimensionAnalyzer(query_executor),
        settings=settings,
        clock=clock,
    )


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


class TestRegistry:
    def test_every_node_type_has_an_executor(self):
        assert set(NODE_EXECUTORS) == set(NodeType)

    def test_lookup_by_name(self):
        assert get_node_executor("branch") is branch.execute
        assert get_node_executor("magic") is None


# -----------------------------------------------------------------------------
# validation
# -----------------------------------------------------------------------------


class TestValidationNode:
    def test_advances(self, context, env):
        node = ValidationNode(id="v", min_drop_pct=10, next="n")
        assert validation.execute(node, context, env) == Advance("n")

    def test_below_threshold_suppressed(self, context, env):
        node = ValidationNode(id="v", min_drop_pct=30, next="n")
        assert validation.execute(node, context, env) == Suppressed("below_threshold")

    def test_no_threshold_means_no_magnitude_check(self, tenant, env):
        ctx = build_context(Alert(metric="cvr", drop_pct=0.1, current_window="2026-01-15T09:00:00Z"), tenant)
        assert validation.execute(ValidationNode(id="v", next="n"), ctx, env) == Advance("n")

    def test_open_short_window_deferred(self, tenant, env):
        alert = Alert(
            metric="cvr",
            drop_pct=50,
            current_window="2026-01-15T11:50:00Z|2026-01-15T12:10:00Z",
        )
        ctx = build_context(alert, tenant)
        node = ValidationNode(id="v", min_drop_pct=10, next="n")
        assert validation.execute(node, ctx, env) == Deferred("window_too_short")

    def test_open_long_window_marks_partial_data(self, tenant, env):
        alert = Alert(metric="cvr", drop_pct=50, current_window="2026-01-15T11:30:00Z")
        ctx = build_context(alert, tenant)
        assert validation.execute(ValidationNode(id="v", next="n"), ctx, env) == Advance("n")
        assert ctx.metadata.partial_data is True

    def test_closed_window_not_partial(self, context, env):
        validation.execute(ValidationNode(id="v", next="n"), context, env)
        assert context.metadata.partial_data is False

    def test_defaults_to_hour_starting_now(self, tenant, env):
        ctx = build_context(Alert(metric="cvr", drop_pct=50), tenant)
        assert validation.execute(ValidationNode(id="v", next="n"), ctx, env) == Advance("n")
        assert ctx.metadata.partial_data is True


# -----------------------------------------------------------------------------
# metric_compare
# -----------------------------------------------------------------------------


def script_summary(executor, current, baseline, baseline_start=BASELINE_START):
    executor.add("OVERALL_SUMMARY", CURRENT_START, [current])
    executor.add("OVERALL_SUMMARY", baseline_start, [baseline])


class TestMetricCompareNode:
    def test_populates_funnel(self, context, env, query_executor):
        script_summary(
            query_executor,
            {"sessions": 1000, "orders": 60, "cvr": 6.0, "gmv": 600},
            {"sessions": 800, "orders": 100, "cvr": 12.5, "gmv": 1000},
        )
        node = MetricCompareNode(id="m", next="n")

        assert metric_compare.execute(node, context, env) == Advance("n")
        assert context.derived.sessions.pct_change == pytest.approx(25.0)
        assert context.resolve("orders_delta_pct") == pytest.approx(-40.0)
        assert context.resolve("funnel.cvr.baseline") == 12.5
        assert context.derived.gmv is None

    def test_zero_baseline_is_zero_change(self, context, env, query_executor):
        script_summary(query_executor, {"sessions": 10, "orders": 1, "cvr": 10.0}, {})
        metric_compare.execute(MetricCompareNode(id="m", next="n"), context, env)
        assert context.derived.sessions.pct_change == 0.0
        assert context.derived.sessions.baseline == 0.0

    def test_fetches_both_windows(self, context, env, query_executor):
        metric_compare.execute(MetricCompareNode(id="m", next="n"), context, env)
        starts = sorted(c.params[0] for c in query_executor.calls_for("OVERALL_SUMMARY"))
        assert starts == [BASELINE_START, CURRENT_START]

    def test_averaged_baseline_divides_volumes_not_rates(self, tenant, env, query_executor):
        alert = Alert(
            metric="cvr",
            current_window="2026-01-15T10:00:00Z|2026-01-15T11:00:00Z",
            baseline_window="avg_prev_3_days_same_hour",
        )
        ctx = build_context(alert, tenant)
        script_summary(
            query_executor,
            {"sessions": 100, "orders": 10, "cvr": 10.0, "gmv": 50},
            {"sessions": 300, "orders": 30, "cvr": 10.0, "gmv": 300},
            baseline_start="2026-01-12 10:00:00",
        )
        node = MetricCompareNode(id="m", metrics=["sessions", "cvr", "gmv"], next="n")
        metric_compare.execute(node, ctx, env)

        assert ctx.derived.sessions.baseline == 100
        assert ctx.derived.sessions.pct_change == 0.0
        assert ctx.derived.cvr.baseline == 10.0
        assert ctx.derived.gmv.pct_change == pytest.approx(-50.0)
        baseline_call = next(
            c for c in query_executor.calls if c.params[0] == "2026-01-12 10:00:00"
        )
        assert baseline_call.filters == (HourOfDayFilter(10),)

    def test_sample_size_gate(self, context, env, query_executor):
        script_summary(query_executor, {"sessions": 40, "orders": 2, "cvr": 5.0}, {"sessions": 50})
        node = MetricCompareNode(id="m", min_sessions=100, next="n")
        assert metric_compare.execute(node, context, env) == Deferred("insufficient_data")

        node = MetricCompareNode(id="m", min_orders=5, next="n")
        assert metric_compare.execute(node, context, env) == Deferred("insufficient_data")

    def test_workflow_context_baseline(self, tenant, env, query_executor):
        from rcaflow.core.workflow import Workflow

        workflow = Workflow(id="wf", context={"baseline_window": "prev_week_same_hour"})
        ctx = build_context(Alert(metric="cvr", current_window="2026-01-15T10:00:00Z"), tenant, workflow)
        metric_compare.execute(MetricCompareNode(id="m", next="n"), ctx, env)
        starts = {c.params[0] for c in query_executor.calls}
        assert "2026-01-08 10:00:00" in starts


# -----------------------------------------------------------------------------
# branch
# -----------------------------------------------------------------------------


def branch_node(**kwargs):
    data = {
        "id": "b",
        "rules": [
            {"if": "sessions_delta_pct < -20", "next": "traffic"},
            {"if": "orders_delta_pct < -10", "next": "orders"},
        ],
    }
    data.update(kwargs)
    return BranchNode.model_validate(data)


class TestBranchNode:
    def test_first_matching_rule_wins(self, context, env):
        context.derived.set("sessions", MetricDelta(500, 1000, -50.0))
        context.derived.set("orders", MetricDelta(50, 100, -50.0))
        assert branch.execute(branch_node(), context, env) == Advance("traffic")

    def test_later_rule(self, context, env):
        context.derived.set("sessions", MetricDelta(1000, 1000, 0.0))
        context.derived.set("orders", MetricDelta(50, 100, -50.0))
        assert branch.execute(branch_node(), context, env) == Advance("orders")

    def test_default_next(self, context, env):
        assert branch.execute(branch_node(default_next="fallback"), context, env) == Advance("fallback")

    def test_terminate_action(self, context, env):
        node = branch_node(default_next={"action": "terminate", "reason": "healthy"})
        assert branch.execute(node, context, env) == Suppressed("healthy")

    def test_terminate_without_reason(self, context, env):
        node = branch_node(default_next={"action": "terminate"})
        assert branch.execute(node, context, env) == Suppressed("no_matching_route")

    def test_no_default(self, context, env):
        assert branch.execute(branch_node(), context, env) == Suppressed("no_matching_route")

    def test_legacy_structured_conditions(self, context, env):
        node = BranchNode.model_validate(
            {
                "id": "b",
                "conditions": [{"field": "alert.drop_pct", "op": ">", "value": 20, "next": "big"}],
                "default_next": "small",
            }
        )
        assert branch.execute(node, context, env) == Advance("big")

    def test_structured_rule(self, context, env):
        node = BranchNode.model_validate(
            {
                "id": "b",
                "rules": [{"if": {"field": "alert.metric", "op": "==", "value": "aov"}, "next": "aov"}],
                "default_next": "other",
            }
        )
        assert branch.execute(node, context, env) == Advance("other")


# -----------------------------------------------------------------------------
# composite and terminals
# -----------------------------------------------------------------------------


class TestCompositeNode:
    def test_jumps_to_first_step(self, context, env):
        node = CompositeNode(id="c", steps=["a", "b"], next="after")
        assert composite.execute(node, context, env) == Advance("a")

    def test_start_node_id(self, context, env):
        assert composite.execute(CompositeNode(id="c", start_node_id="s"), context, env) == Advance("s")


class TestTerminalNodes:
    def test_suppression(self, context, env):
        assert terminal.suppress(SuppressionNode(id="s", reason="holiday"), context, env) == Suppressed("holiday")
        assert terminal.suppress(SuppressionNode(id="s"), context, env) == Suppressed("unknown")

    def test_defer(self, context, env):
        assert terminal.defer(DeferNode(id="d", reason="late_data"), context, env) == Deferred("late_data")
        assert terminal.defer(DeferNode(id="d"), context, env) == Deferred("insufficient_data")

    def test_terminals_set_no_insight(self, context, env):
        terminal.suppress(SuppressionNode(id="s"), context, env)
        assert context.final_insight is None


class TestFollow:
    def test_next_pointer(self):
        assert follow(ValidationNode(id="v", next="n")) == Advance("n")

    def test_no_successor_ends_run(self):
        assert follow(ValidationNode(id="v")) == Done()

    def test_environment_clock(self, env):
        assert env.now() == FIXED_NOW
