"""Execution context threaded through one workflow run.

The context is created by the engine for a single (alert, tenant, workflow)
triple, mutated in place by node executors, and discarded once the run's
result has been produced. Its analytical state is held in explicit structs;
`ExecutionContext.resolve()` offers dotted-path access over them for the
condition evaluator.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from rcaflow.core.workflow import FUNNEL_METRICS, Alert, Tenant, Workflow


class _Missing:
    """Sentinel for a path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


# -----------------------------------------------------------------------------
# Findings and analysis state
# -----------------------------------------------------------------------------


@dataclass
class Finding:
    """One scored, dimension-value-level explanation candidate."""
    dimension: str
    value: Any
    change: str
    impact_score: float
    dominant: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AnalysisResults:
    """Accumulated analytical conclusions for a run."""
    root_causes: List[Finding] = field(default_factory=list)
    confidence: Optional[float] = None
    mixed_factors: bool = False
    drill_down_path: List[str] = field(default_factory=list)

    @property
    def top_cause(self) -> Optional[Finding]:
        return self.root_causes[0] if self.root_causes else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_causes": [c.to_dict() for c in self.root_causes],
            "confidence": self.confidence,
            "mixed_factors": self.mixed_factors,
            "drill_down_path": list(self.drill_down_path),
        }


# -----------------------------------------------------------------------------
# Derived metrics
# -----------------------------------------------------------------------------


@dataclass
class MetricDelta:
    """Current vs baseline value of one funnel metric."""
    current: float
    baseline: float
    pct_change: float


@dataclass
class DerivedMetrics:
    """Funnel metrics computed by ``metric_compare``.

    Each metric is exposed under a namespaced key (``funnel.orders.pct_change``)
    and a flat alias (``orders_delta_pct``).
    """
    sessions: Optional[MetricDelta] = None
    orders: Optional[MetricDelta] = None
    cvr: Optional[MetricDelta] = None
    gmv: Optional[MetricDelta] = None

    @property
    def funnel(self) -> Dict[str, MetricDelta]:
        return {
            name: getattr(self, name)
            for name in FUNNEL_METRICS
            if getattr(self, name) is not None
        }

    def set(self, name: str, delta: MetricDelta) -> None:
        if name not in FUNNEL_METRICS:
            raise KeyError(name)
        setattr(self, name, delta)

    def flat(self) -> Dict[str, float]:
        """All namespaced keys and aliases with their values."""
        values: Dict[str, float] = {}
        for name, delta in self.funnel.items():
            values[f"funnel.{name}.current"] = delta.current
            values[f"funnel.{name}.baseline"] = delta.baseline
            values[f"funnel.{name}.pct_change"] = delta.pct_change
            values[f"{name}_delta_pct"] = delta.pct_change
        return values

    def lookup(self, key: str) -> Any:
        """Direct lookup of a namespaced key or alias."""
        return self.flat().get(key, MISSING)

    def pct_change(self, name: str) -> Optional[float]:
        delta = getattr(self, name, None)
        return delta.pct_change if delta is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "funnel": {name: asdict(delta) for name, delta in self.funnel.items()},
            **{f"{name}_delta_pct": d.pct_change for name, d in self.funnel.items()},
        }


# -----------------------------------------------------------------------------
# Run metadata
# -----------------------------------------------------------------------------


@dataclass
class RunMetadata:
    """Identifiers and flags describing a single run."""
    workflow_id: str
    workflow_version: int
    executed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    trace_id: str = field(default_factory=lambda: str(uuid4()))
    partial_data: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -----------------------------------------------------------------------------
# Execution context
# -----------------------------------------------------------------------------


@dataclass
class ExecutionContext:
    """Mutable working state for one workflow run."""
    alert: Alert
    tenant: Tenant
    metadata: RunMetadata
    workflow_context: Mapping[str, Any] = field(default_factory=dict)
    derived: DerivedMetrics = field(default_factory=DerivedMetrics)
    analysis_results: AnalysisResults = field(default_factory=AnalysisResults)
    final_insight: Optional[Dict[str, Any]] = None

    @classmethod
    def create(
        cls,
        alert: Alert,
        tenant: Tenant,
        workflow: Workflow,
        now: Optional[datetime] = None,
    ) -> "ExecutionContext":
        """Build the initial context for a run."""
        executed_at = (now or datetime.now(timezone.utc)).isoformat()
        return cls(
            alert=alert.model_copy(),
            tenant=tenant,
            metadata=RunMetadata(
                workflow_id=workflow.id,
                workflow_version=workflow.version,
                executed_at=executed_at,
            ),
            workflow_context=dict(workflow.context),
        )

    @property
    def brand(self) -> Tenant:
        return self.tenant

    @property
    def baseline_window(self) -> Optional[str]:
        """Baseline token from the alert, else from the workflow context."""
        return self.alert.baseline_window or self.workflow_context.get("baseline_window")

    def resolve(self, path: str) -> Any:
        """Resolve a field reference.

        A direct key in ``derived`` wins; otherwise the dotted path is walked
        from the context root. Returns ``MISSING`` when nothing resolves.
        """
        value = self.derived.lookup(path)
        if value is not MISSING:
            return value
        return _walk(self, path.split("."))


def _walk(root: Any, parts: List[str]) -> Any:
    current = root
    for part in parts:
        if current is None or current is MISSING or not part or part.startswith("_"):
            return MISSING
        if isinstance(current, Mapping):
            current = current.get(part, MISSING)
        elif isinstance(current, (list, tuple)):
            if not part.isdigit() or int(part) >= len(current):
                return MISSING
            current = current[int(part)]
        else:
            current = getattr(current, part, MISSING)
            if callable(current):
                return MISSING
    if current is None:
        return MISSING
    return current
