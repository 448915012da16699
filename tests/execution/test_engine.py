"""End-to-end tests for the workflow execution engine."""

import pytest

from conftest import FIXED_NOW, TENANT_ID, script_gateway_failure
from rcaflow.core.exceptions import DataFetchError, QueryTimeoutError
from rcaflow.core.results import ErrorType, RunStatus
from rcaflow.execution import ExecutionEngine


@pytest.fixture
def engine(query_executor, settings, clock):
    return ExecutionEngine(query_executor, settings, clock=clock)


# -----------------------------------------------------------------------------
# Completed runs
# -----------------------------------------------------------------------------


class TestSuccessfulRun:
    def test_full_diagnosis(self, engine, query_executor, alert, tenant, workflow_definition):
        script_gateway_failure(query_executor)

        result = engine.execute(alert, tenant, workflow_definition)

        assert result.status == RunStatus.SUCCESS, result.message
        assert result.steps == 7
        insight = result.insight
        assert insight["classification"] == "actionable"
        assert [c["value"] for c in insight["root_causes"]] == ["razorpay", "Blue Shirt"]
        assert insight["root_causes"][0]["dominant"] is True
        assert insight["drill_down_path"] == ["payment_gateway=razorpay"]
        assert insight["insight"]["confidence"] == 0.8
        assert insight["insight"]["summary"] == (
            "CVR drop likely associated with payment_gateway (razorpay)."
        )

    def test_serialised_result(self, engine, query_executor, alert, tenant, workflow_definition):
        script_gateway_failure(query_executor)

        payload = engine.execute(alert, tenant, workflow_definition).to_dict()

        assert payload["status"] == "success"
        assert payload["tenant_id"] == TENANT_ID
        assert payload["metric"] == "cvr"
        assert payload["metadata"]["workflow_id"] == "cvr-drop"
        assert payload["metadata"]["workflow_version"] == 1
        assert payload["metadata"]["executed_at"] == FIXED_NOW.isoformat()
        assert payload["metadata"]["partial_data"] is False
        assert "insight" in payload

    def test_accepts_raw_mappings(self, engine, query_executor, workflow_definition):
        script_gateway_failure(query_executor)
        alert = {
            "metric": "cvr",
            "drop_pct": 25,
            "current_window": "2026-01-15T10:00:00Z|2026-01-15T11:00:00Z",
            "baseline_window": "prev_day_same_hour",
        }

        result = engine.execute(alert, {"brand_id": TENANT_ID}, workflow_definition)

        assert result.success
        assert {c.tenant_id for c in query_executor.calls} == {TENANT_ID}

    def test_composite_subgraph_reaches_insight(self, engine, query_executor, alert, tenant):
        script_gateway_failure(query_executor)
        # The sub-graph's last step wires on to the composite's successor itself
        workflow = {
            "id": "cvr-drop-composite",
            "nodes": [
                {"id": "validate", "type": "validation", "min_drop_pct": 10, "next": "compare"},
                {"id": "compare", "type": "metric_compare", "next": "diagnose"},
                {"id": "diagnose", "type": "composite", "steps": ["breakdown", "drill"], "next": "score"},
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

        result = engine.execute(alert, tenant, workflow)

        assert result.status == RunStatus.SUCCESS, result.message
        assert result.steps == 7
        assert [c["value"] for c in result.insight["root_causes"]] == ["razorpay", "Blue Shirt"]
        assert result.insight["insight"]["confidence"] == 0.8

    def test_composite_subgraph_ending_in_terminal(self, engine, alert, tenant):
        workflow = {
            "nodes": [
                {"id": "validate", "type": "validation", "next": "gate"},
                {"id": "gate", "type": "composite", "steps": ["quiet"], "next": "report"},
                {"id": "quiet", "type": "suppression", "reason": "maintenance_window"},
                {"id": "report", "type": "insight"},
            ]
        }

        result = engine.execute(alert, tenant, workflow)

        assert result.status == RunStatus.SUPPRESSED
        assert result.reason == "maintenance_window"
        assert result.steps == 3

    def test_runs_are_independent(self, engine, query_executor, alert, tenant, workflow_definition):
        script_gateway_failure(query_executor)
        first = engine.execute(alert, tenant, workflow_definition)
        second = engine.execute(alert, tenant, workflow_definition)
        assert first.insight == second.insight
        assert first.metadata["trace_id"] != second.metadata["trace_id"]


class TestEarlyExit:
    def test_below_threshold(self, engine, tenant, workflow_definition, query_executor):
        from rcaflow.core.workflow import Alert

        result = engine.execute(Alert(metric="cvr", drop_pct=5), tenant, workflow_definition)

        assert result.status == RunStatus.SUPPRESSED
        assert result.reason == "below_threshold"
        assert result.steps == 1
        assert query_executor.calls == []

    def test_traffic_drop_route(self, engine, query_executor, alert, tenant, workflow_definition):
        script_gateway_failure(query_executor)
        query_executor.add(
            "OVERALL_SUMMARY",
            "2026-01-15 10:00:00",
            [{"sessions": 500, "orders": 30, "cvr": 6.0}],
        )

        result = engine.execute(alert, tenant, workflow_definition)

        assert result.status == RunStatus.SUPPRESSED
        assert result.reason == "traffic_drop"
        assert result.to_dict()["reason"] == "traffic_drop"
        assert result.insight is None

    def test_insufficient_sample_deferred(self, engine, query_executor, alert, tenant, workflow_definition):
        script_gateway_failure(query_executor)
        workflow_definition["nodes"][1]["min_orders"] = 100

        result = engine.execute(alert, tenant, workflow_definition)

        assert result.status == RunStatus.DEFERRED
        assert result.reason == "insufficient_data"


# -----------------------------------------------------------------------------
# Failed runs
# -----------------------------------------------------------------------------


class TestFailedRun:
    def test_invalid_workflow(self, engine, alert, tenant, query_executor):
        result = engine.execute(alert, tenant, {"nodes": []})

        assert result.status == RunStatus.ERROR
        assert result.error_type == ErrorType.WORKFLOW_VALIDATION
        assert query_executor.calls == []

    def test_invalid_tenant(self, engine, alert, workflow_definition):
        result = engine.execute(alert, {"tenant_id": ""}, workflow_definition)
        assert result.error_type == ErrorType.EXECUTION

    def test_step_budget(self, query_executor, settings, clock, alert, tenant, workflow_definition):
        script_gateway_failure(query_executor)
        engine = ExecutionEngine(query_executor, settings.model_copy(update={"max_steps": 3}), clock=clock)

        result = engine.execute(alert, tenant, workflow_definition)

        assert result.error_type == ErrorType.EXECUTION
        assert result.message == "Workflow execution exceeded max steps"

    def test_finishing_without_insight(self, engine, alert, tenant):
        workflow = {
            "nodes": [
                {"id": "validate", "type": "validation", "next": "score"},
                {"id": "score", "type": "confidence"},
            ]
        }

        result = engine.execute(alert, tenant, workflow)

        assert result.error_type == ErrorType.EXECUTION
        assert result.message == "Workflow finished without generating insight"

    @pytest.mark.parametrize("error", [DataFetchError("db gone"), QueryTimeoutError("too slow")])
    def test_data_fetch_failure(self, engine, query_executor, alert, tenant, workflow_definition, error):
        query_executor.fail("OVERALL_SUMMARY", error)

        result = engine.execute(alert, tenant, workflow_definition)

        assert result.error_type == ErrorType.DATA_FETCH
        assert result.to_dict() == {
            "status": "error",
            "type": "data_fetch_error",
            "message": error.message,
        }

    def test_unexpected_exception(self, engine, query_executor, alert, tenant, workflow_definition):
        query_executor.fail("OVERALL_SUMMARY", RuntimeError("kaboom"))

        result = engine.execute(alert, tenant, workflow_definition)

        assert result.error_type == ErrorType.EXECUTION
        assert result.message == "kaboom"
