"""Workflow execution engine.

The engine drives one run of a workflow for one alert:
1. Validates the workflow graph
2. Builds a fresh ExecutionContext
3. Starting at the start node, invokes the node's executor and follows the
   returned transition
4. Stops at a terminal transition, a fatal error, or the step budget

Whatever happens, ``execute`` returns a RunResult; it never raises.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from rcaflow.analysis.dimensions import DimensionAnalyzer
from rcaflow.config.settings import Settings, get_settings
from rcaflow.core.context import ExecutionContext
from rcaflow.core.exceptions import (
    DataFetchError,
    ExecutionError,
    NodeNotFoundError,
    RCAFlowError,
    StepBudgetExceededError,
    WorkflowValidationError,
)
from rcaflow.core.interfaces import QueryExecutor
from rcaflow.core.results import (
    Advance,
    Deferred,
    Done,
    ErrorType,
    RunResult,
    RunStatus,
    Suppressed,
    Transition,
)
from rcaflow.core.workflow import Alert, Tenant, Workflow
from rcaflow.nodes import get_node_executor
from rcaflow.nodes.base import NodeEnvironment
from rcaflow.utils.logging import get_logger
from rcaflow.validation.workflow_validator import WorkflowValidator

logger = get_logger(__name__)


class ExecutionEngine:
    """Runs validated workflows against a query collaborator.

    Usage:
        engine = ExecutionEngine(SQLiteQueryExecutor.from_settings(settings), settings)
        result = engine.execute(alert, tenant, workflow)
        if result.success:
            print(result.insight["insight"]["summary"])
        else:
            print(result.status, result.reason or result.message)
    """

    def __init__(
        self,
        query_executor: QueryExecutor,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        analyzer: Optional[DimensionAnalyzer] = None,
    ):
        """Initialize the engine.

        Args:
            query_executor: Tenant-scoped template executor.
            settings: Limits and node policy settings. Defaults to get_settings().
            clock: Source of "now"; injectable for tests.
            analyzer: Dimension analyser; built on ``query_executor`` if omitted.
        """
        self.settings = settings or get_settings()
        self.validator = WorkflowValidator.from_settings(self.settings)
        self.env = NodeEnvironment(
            query_executor=query_executor,
            analyzer=analyzer or DimensionAnalyzer(query_executor),
            settings=self.settings,
        )
        if clock is not None:
            self.env.clock = clock

    def execute(
        self,
        alert: Union[Alert, Mapping[str, Any]],
        tenant: Union[Tenant, Mapping[str, Any]],
        workflow: Union[Workflow, Mapping[str, Any]],
    ) -> RunResult:
        """Run a workflow for an alert.

        Args:
            alert: The triggering alert (model or raw mapping).
            tenant: Tenant identity (model or raw mapping).
            workflow: Workflow definition (model or raw mapping).

        Returns:
            RunResult with status success, suppressed, deferred or error.
        """
        try:
            validated = self.validator.validate(workflow)
        except WorkflowValidationError as e:
            logger.warning("Workflow validation failed: %s", e.message)
            return RunResult.error(ErrorType.WORKFLOW_VALIDATION, e.message)

        try:
            alert = alert if isinstance(alert, Alert) else Alert.model_validate(alert)
            tenant = tenant if isinstance(tenant, Tenant) else Tenant.model_validate(tenant)
        except ValidationError as e:
            return RunResult.error(ErrorType.EXECUTION, f"Invalid run input: {e.errors()[0]['msg']}")

        context = ExecutionContext.create(alert, tenant, validated, now=self.env.now())
        log_extra = {
            "trace_id": context.metadata.trace_id,
            "workflow_id": validated.id,
            "tenant_id": tenant.tenant_id,
        }
        logger.info("Starting run", extra=log_extra)

        try:
            transition, steps = self._run(validated, context)
        except DataFetchError as e:
            logger.error("Data fetch failed: %s", e, extra=log_extra)
            return RunResult.error(ErrorType.DATA_FETCH, e.message)
        except RCAFlowError as e:
            logger.error("Execution failed: %s", e, extra=log_extra)
            return RunResult.error(ErrorType.EXECUTION, e.message)
        except Exception as e:
            logger.exception("Unexpected error during run", extra=log_extra)
            return RunResult.error(ErrorType.EXECUTION, str(e) or type(e).__name__)

        result = self._to_result(transition, context, steps)
        logger.info(
            "Run finished with status %s",
            result.status.value,
            extra={**log_extra, "steps": steps},
        )
        return result

    def _run(self, workflow: Workflow, context: ExecutionContext) -> Tuple[Transition, int]:
        current_id = workflow.resolve_start_node()
        steps = 0

        while True:
            if steps >= self.settings.max_steps:
                raise StepBudgetExceededError(
                    "Workflow execution exceeded max steps",
                    context={"max_steps": self.settings.max_steps},
                )

            node = workflow.get_node(current_id) if current_id else None
            if node is None:
                raise NodeNotFoundError(f"Node {current_id} not found in workflow")

            executor = get_node_executor(node.type)
            if executor is None:
                raise ExecutionError(f"No executor for node type {node.type}")

            logger.debug("Executing node %s (%s)", node.id, node.type)
            transition = executor(node, context, self.env)
            steps += 1

            if isinstance(transition, Advance):
                current_id = transition.next_id
            elif isinstance(transition, Done):
                if context.final_insight is None:
                    raise ExecutionError("Workflow finished without generating insight")
                return transition, steps
            elif isinstance(transition, (Suppressed, Deferred)):
                return transition, steps
            else:
                raise ExecutionError(f"Unknown transition from node {node.id}: {transition!r}")

    def _to_result(self, transition: Transition, context: ExecutionContext, steps: int) -> RunResult:
        common = dict(
            tenant_id=context.tenant.tenant_id,
            metric=context.alert.metric,
            metadata=context.metadata.to_dict(),
            steps=steps,
        )
        if isinstance(transition, Suppressed):
            return RunResult(status=RunStatus.SUPPRESSED, reason=transition.reason, **common)
        if isinstance(transition, Deferred):
            return RunResult(status=RunStatus.DEFERRED, reason=transition.reason, **common)
        return RunResult(status=RunStatus.SUCCESS, insight=context.final_insight, **common)
