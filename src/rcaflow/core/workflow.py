"""Workflow graph models.

This module defines the declarative analysis graph:
- NodeType: the closed set of node kinds
- One pydantic model per node kind, joined in the `Node` tagged union
- Workflow: a versioned graph of nodes
- Alert / Tenant: the trigger payload and tenant identity a run is for

Nodes point at their successors by id. Graph-level invariants (pointer
resolution, acyclicity, depth) are enforced by the WorkflowValidator, not by
the models, so that a stored definition can always be loaded and reported on.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class NodeType(str, Enum):
    """Types of nodes in a workflow."""
    VALIDATION = "validation"
    METRIC_COMPARE = "metric_compare"
    BRANCH = "branch"
    RECURSIVE_DIMENSION_BREAKDOWN = "recursive_dimension_breakdown"
    DRILL_DOWN = "drill_down"
    COMPOSITE = "composite"
    CONFIDENCE = "confidence"
    INSIGHT = "insight"
    SUPPRESSION = "suppression"
    DEFER = "defer"


NODE_TYPE_VALUES = frozenset(t.value for t in NodeType)

FUNNEL_METRICS = ("sessions", "orders", "cvr", "gmv")
DEFAULT_FUNNEL_METRICS = ("sessions", "orders", "cvr")

COMPARISON_OPERATORS = (">=", "<=", "==", "!=", ">", "<")


# -----------------------------------------------------------------------------
# Node definitions
# -----------------------------------------------------------------------------


class NodeBase(BaseModel):
    """Base class for all nodes.

    Older definitions nest kind-specific parameters under ``params``; those
    keys are lifted to the top level (top-level keys win).
    """
    id: str
    type: str
    next: Optional[str] = None
    description: str = ""

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def lift_legacy_params(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("params"), dict):
            merged = dict(data["params"])
            merged.update({k: v for k, v in data.items() if k != "params"})
            return merged
        return data

    @field_validator("id")
    @classmethod
    def validate_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("node id cannot be empty")
        return v

    def successors(self) -> List[str]:
        """Ids of every node this node can transition to."""
        return [self.next] if self.next else []


class ValidationCheck(BaseModel):
    """Declared data sanity check; recorded in the run log."""
    metric: str = ""
    condition: str = ""


class ValidationNode(NodeBase):
    """Gate on data-window completeness and minimum drop magnitude."""
    type: Literal["validation"] = "validation"
    min_drop_pct: Optional[float] = None
    checks: List[ValidationCheck] = Field(default_factory=list)


class MetricCompareNode(NodeBase):
    """Compute current-vs-baseline funnel metrics and their deltas."""
    type: Literal["metric_compare"] = "metric_compare"
    metrics: Optional[List[str]] = None
    min_sessions: Optional[float] = None
    min_orders: Optional[float] = None

    @field_validator("metrics")
    @classmethod
    def validate_known_metrics(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        unknown = [m for m in v if m not in FUNNEL_METRICS]
        if unknown:
            raise ValueError(f"unknown metrics: {', '.join(unknown)}")
        return v


class StructuredCondition(BaseModel):
    """Legacy condition form: ``{field, op, value}``."""
    field: str
    op: str
    value: Any = None
    next: Optional[str] = None

    @field_validator("op")
    @classmethod
    def validate_op(cls, v: str) -> str:
        if v not in COMPARISON_OPERATORS:
            raise ValueError(f"unsupported operator: {v}")
        return v


class BranchRule(BaseModel):
    """Route to ``next`` when ``if`` holds."""
    model_config = ConfigDict(populate_by_name=True)

    condition: Union[str, StructuredCondition] = Field(alias="if")
    next: str


class TerminateAction(BaseModel):
    """Explicit terminal default route of a branch node."""
    action: Literal["terminate"] = "terminate"
    reason: Optional[str] = None


class BranchNode(NodeBase):
    """Route by the first matching rule in declaration order."""
    type: Literal["branch"] = "branch"
    rules: List[BranchRule] = Field(default_factory=list)
    conditions: List[StructuredCondition] = Field(default_factory=list)
    default_next: Optional[Union[str, TerminateAction]] = None
    routes: Dict[str, str] = Field(default_factory=dict)

    @property
    def effective_rules(self) -> List[BranchRule]:
        """Rules in evaluation order; legacy ``conditions`` when no rules are set."""
        if self.rules:
            return list(self.rules)
        return [
            BranchRule(condition=c, next=c.next)
            for c in self.conditions
            if c.next
        ]

    def successors(self) -> List[str]:
        targets = super().successors()
        targets.extend(self.routes.values())
        targets.extend(rule.next for rule in self.effective_rules)
        if isinstance(self.default_next, str):
            targets.append(self.default_next)
        return list(dict.fromkeys(targets))


class BreakdownNode(NodeBase):
    """Run dimension analysis across several dimensions and merge findings."""
    type: Literal["recursive_dimension_breakdown"] = "recursive_dimension_breakdown"
    dimensions: List[str]

    @field_validator("dimensions")
    @classmethod
    def validate_dimensions_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("dimensions cannot be empty")
        return v


class DrillDownNode(NodeBase):
    """Re-run dimension analysis filtered to the top root cause."""
    type: Literal["drill_down"] = "drill_down"
    dimension: str


class CompositeNode(NodeBase):
    """Structural indirection into a sub-graph.

    The composite jumps to the first of ``steps`` (or ``start_node_id``). The
    sub-graph's own wiring must lead on to a terminal node or back to the
    composite's intended successor; nothing re-enters the composite.
    """
    type: Literal["composite"] = "composite"
    steps: List[str] = Field(default_factory=list)
    start_node_id: Optional[str] = None

    @property
    def entry_point(self) -> Optional[str]:
        if self.steps:
            return self.steps[0]
        return self.start_node_id or self.next

    def successors(self) -> List[str]:
        targets = list(self.steps)
        if self.start_node_id:
            targets.append(self.start_node_id)
        targets.extend(super().successors())
        return list(dict.fromkeys(targets))


class ConfidenceNode(NodeBase):
    """Derive a scalar confidence from the shape of the evidence."""
    type: Literal["confidence"] = "confidence"


class InsightNode(NodeBase):
    """Terminal: compose the final insight."""
    type: Literal["insight"] = "insight"
    template: Optional[str] = None


class SuppressionNode(NodeBase):
    """Terminal: end the run as suppressed."""
    type: Literal["suppression"] = "suppression"
    reason: Optional[str] = None


class DeferNode(NodeBase):
    """Terminal: end the run as deferred."""
    type: Literal["defer"] = "defer"
    reason: Optional[str] = None


Node = Annotated[
    Union[
        ValidationNode,
        MetricCompareNode,
        BranchNode,
        BreakdownNode,
        DrillDownNode,
        CompositeNode,
        ConfidenceNode,
        InsightNode,
        SuppressionNode,
        DeferNode,
    ],
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Complete Workflow
# -----------------------------------------------------------------------------


class Workflow(BaseModel):
    """Versioned analysis graph.

    A workflow is immutable once a version is persisted; editing produces a
    new version in the store.
    """
    id: str = "adhoc"
    version: int = 1
    nodes: List[Node] = Field(default_factory=list)
    start_node: Optional[str] = None
    workflow_type: Optional[str] = None
    description: str = ""
    trigger: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def accept_stored_id(cls, data: Any) -> Any:
        # Stored definitions carry the id as ``workflow_id``.
        if isinstance(data, dict) and "id" not in data and "workflow_id" in data:
            data = dict(data)
            data["id"] = data["workflow_id"]
        return data

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def resolve_start_node(self) -> Optional[str]:
        """Explicit start node, else the sole validation node."""
        if self.start_node:
            return self.start_node
        entries = [n.id for n in self.nodes if n.type == NodeType.VALIDATION]
        if len(entries) == 1:
            return entries[0]
        return None


# -----------------------------------------------------------------------------
# Trigger input
# -----------------------------------------------------------------------------


class Alert(BaseModel):
    """Observed metric regression that triggers a run."""
    metric: str
    drop_pct: float = 0.0
    current_window: Optional[str] = None
    baseline_window: Optional[str] = None
    timestamp: Optional[str] = None

    model_config = ConfigDict(extra="allow", frozen=True)


class Tenant(BaseModel):
    """Identity of the tenant whose data is analysed."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(validation_alias=AliasChoices("tenant_id", "brand_id", "id"))

    @field_validator("tenant_id", mode="before")
    @classmethod
    def coerce_tenant_id(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            raise ValueError("tenant_id cannot be empty")
        return str(v)
