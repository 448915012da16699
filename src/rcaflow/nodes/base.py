"""Shared plumbing for node executors.

A node executor is a plain function::

    execute(node, context, env) -> Transition

It reads and updates the run's ExecutionContext and tells the engine where to
go next. ``env`` bundles the collaborators an executor may need.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Tuple

from rcaflow.analysis.dimensions import DimensionAnalyzer
from rcaflow.config.settings import Settings
from rcaflow.core.context import ExecutionContext
from rcaflow.core.interfaces import QueryExecutor
from rcaflow.core.results import Advance, Done, Transition
from rcaflow.core.windows import DEFAULT_BASELINE_WINDOW, TimeWindow, resolve_window
from rcaflow.execution.conditions import ConditionEvaluator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NodeEnvironment:
    """Collaborators available to every node executor."""
    query_executor: QueryExecutor
    analyzer: DimensionAnalyzer
    settings: Settings
    clock: Callable[[], datetime] = _utc_now
    conditions: ConditionEvaluator = field(default_factory=ConditionEvaluator)

    def now(self) -> datetime:
        current = self.clock()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current


class NodeExecutor(Protocol):
    def __call__(self, node: Any, context: ExecutionContext, env: NodeEnvironment) -> Transition:
        ...


def follow(node: Any) -> Transition:
    """Continue at ``node.next``; a node with no successor ends the run."""
    if node.next:
        return Advance(node.next)
    return Done()


def resolve_current_window(context: ExecutionContext, env: NodeEnvironment) -> TimeWindow:
    """The alert's current window, else its timestamp, else the hour starting now."""
    now = env.now()
    token = context.alert.current_window or context.alert.timestamp or now.isoformat()
    return resolve_window(token, reference=now)


def resolve_run_windows(
    context: ExecutionContext, env: NodeEnvironment
) -> Tuple[TimeWindow, TimeWindow]:
    """Resolve (current, baseline) for a run.

    The baseline token is taken from the alert, then the workflow context, then
    the default; it is resolved relative to the start of the current window.
    """
    current = resolve_current_window(context, env)
    token = context.baseline_window or DEFAULT_BASELINE_WINDOW
    baseline = resolve_window(token, reference=current.start)
    return current, baseline
