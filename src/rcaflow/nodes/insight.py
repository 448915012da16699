"""insight node: compose the run's final, confidence-aware narrative."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from rcaflow.core.context import AnalysisResults, ExecutionContext, Finding
from rcaflow.core.results import Done, Transition
from rcaflow.core.workflow import InsightNode
from rcaflow.nodes.base import NodeEnvironment
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.5

ACTIONABLE = "actionable"
INVESTIGATING = "investigating"
INCONCLUSIVE = "inconclusive"

_ABBREVIATED_METRICS = {"cvr": "CVR", "conversion_rate": "CVR", "aov": "AOV", "gmv": "GMV"}


def format_label(name: str) -> str:
    """``payment_gateway`` -> ``Payment Gateway``."""
    return " ".join(word[:1].upper() + word[1:] for word in name.replace("_", " ").split(" "))


def metric_label(metric: str) -> str:
    return _ABBREVIATED_METRICS.get(metric.lower(), format_label(metric))


def classify(causes: List[Finding], confidence: float) -> str:
    if causes and confidence > 0.6:
        return ACTIONABLE
    if not causes or confidence < 0.4:
        return INCONCLUSIVE
    return INVESTIGATING


def build_summary(label: str, results: AnalysisResults, confidence: float) -> str:
    top = results.top_cause
    if top is None:
        return f"{label} drop observed, but analysis of available dimensions was inconclusive."
    if results.mixed_factors:
        return (
            f"{label} drop appears to be driven by mixed factors, "
            f"primarily {top.dimension} ({top.value})."
        )
    if confidence > 0.8:
        prefix = "drop driven by"
    elif confidence > 0.6:
        prefix = "drop likely associated with"
    else:
        prefix = "drop potentially related to"
    return f"{label} {prefix} {top.dimension} ({top.value})."


def _change_phrase(change: str) -> str:
    # "Volume dropped 20.0% (100 -> 80)" -> "volume dropped 20.0%"
    phrase = change.split("(")[0].strip()
    return phrase[:1].lower() + phrase[1:]


def build_conclusion(causes: List[Finding]) -> str:
    if not causes:
        return (
            "The analysis did not identify a statistically significant primary cause "
            "for the observed drop. The issue may be systemic, or related to a "
            "dimension not covered by this workflow (e.g. traffic source or site speed)."
        )

    top = causes[0]
    if top.dimension == "payment_gateway":
        narrative = f"The drop is primarily caused by a failure in the {top.value} payment gateway."
    elif top.dimension == "discount_code":
        narrative = (
            f"The drop is heavily influenced by a collapse in the usage of the "
            f"'{top.value}' discount code."
        )
    elif top.dimension in ("product", "product_id"):
        narrative = (
            f"A distinct decline in sales for specific products (notably {top.value}) "
            f"is the main driver."
        )
    else:
        narrative = (
            f"The analysis identified {format_label(top.dimension)} ('{top.value}') "
            f"as the primary contributing factor."
        )

    narrative += (
        f" This factor saw {_change_phrase(top.change)}, which correlates strongly "
        f"with the overall metric drop."
    )

    if len(causes) > 1 and causes[1].impact_score > 50:
        second = causes[1]
        narrative += (
            f" Additionally, significant declines were observed in "
            f"{format_label(second.dimension)} ({second.value}), suggesting a potential "
            f"compounding issue."
        )
    return narrative


def build_limitations(results: AnalysisResults, confidence: float, partial_data: bool) -> List[str]:
    limitations = ["Analysis limited to granularities defined in workflow"]
    if confidence < 0.6:
        limitations.append("Low confidence signal - findings may be noise or secondary factors")
    if results.mixed_factors:
        limitations.append("Multiple contributing factors detected - causality is complex")
    if partial_data:
        limitations.append("Warning: Analysis performed on partial/incomplete window")
    return limitations


def build_insight(context: ExecutionContext, confidence: Optional[float] = None) -> Dict[str, Any]:
    """Assemble the final insight payload from the context's analysis state."""
    results = context.analysis_results
    causes = results.root_causes
    if confidence is None:
        confidence = results.confidence if results.confidence is not None else DEFAULT_CONFIDENCE
    label = metric_label(context.alert.metric)

    return {
        "status": "success",
        "classification": classify(causes, confidence),
        "root_causes": [c.to_dict() for c in causes],
        "drill_down_path": list(results.drill_down_path),
        "insight": {
            "summary": build_summary(label, results, confidence),
            "conclusion": build_conclusion(causes),
            "details": [f"{format_label(c.dimension)} '{c.value}': {c.change}" for c in causes],
            "limitations": build_limitations(results, confidence, context.metadata.partial_data),
            "confidence": confidence,
        },
    }


def execute(node: InsightNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    context.final_insight = build_insight(context)
    logger.info(
        "Insight generated: %s",
        context.final_insight["classification"],
        extra={"node_id": node.id, "trace_id": context.metadata.trace_id},
    )
    return Done()
