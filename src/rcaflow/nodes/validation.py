"""validation node: is the alert worth analysing at all?"""

from __future__ import annotations

from rcaflow.core.context import ExecutionContext
from rcaflow.core.results import Deferred, Suppressed, Transition
from rcaflow.core.workflow import ValidationNode
from rcaflow.nodes.base import NodeEnvironment, follow, resolve_current_window
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)


def execute(node: ValidationNode, context: ExecutionContext, env: NodeEnvironment) -> Transition:
    """Check window completeness, then drop magnitude.

    A window that ends in the future is only analysed when it is at least
    ``min_window_minutes`` long, and the run is then flagged as partial data.
    """
    for check in node.checks:
        logger.info("Running check: %s %s", check.metric, check.condition)

    window = resolve_current_window(context, env)
    now = env.now()
    if window.end > now:
        if window.duration_minutes < env.settings.min_window_minutes:
            logger.warning(
                "Window too short for stable analysis",
                extra={"duration_minutes": window.duration_minutes, "node_id": node.id},
            )
            return Deferred("window_too_short")
        logger.warning("Current window is still open; analysing partial data")
        context.metadata.partial_data = True

    if node.min_drop_pct is not None and context.alert.drop_pct < node.min_drop_pct:
        logger.info(
            "Drop %s%% is below threshold %s%%", context.alert.drop_pct, node.min_drop_pct
        )
        return Suppressed("below_threshold")

    return follow(node)
