"""Condition evaluation for branch routing.

Branch rules use a small, flat comparison grammar::

    expr := expr ' OR ' expr | expr ' AND ' expr | leaf
    leaf := field op literal        op in {>, >=, <, <=, ==, !=}

OR binds looser than AND and there is no grouping. A field is looked up
directly in the context's derived metrics, then as a dotted path from the
context root. A literal that parses as a number is compared numerically;
anything else is resolved as another field.

Evaluation fails closed: an unparseable leaf, an operand that does not
resolve, or operands that cannot be compared all evaluate to False.
"""

from __future__ import annotations

import math
import operator
import re
from typing import Any, Callable, Dict, Mapping, Optional, Union

from rcaflow.core.context import MISSING, ExecutionContext
from rcaflow.core.workflow import StructuredCondition
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)


# Allowed comparison operators
COMPARISON_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

LEAF_PATTERN = re.compile(r"^([\w.]+)\s*(>=|<=|>|<|==|!=)\s*([-\w.]+)$")

Condition = Union[str, StructuredCondition, Mapping[str, Any]]


class ConditionEvaluator:
    """Evaluate branch conditions against an execution context.

    Usage:
        evaluator = ConditionEvaluator()
        evaluator.evaluate("sessions_delta_pct > 15 AND orders_delta_pct >= -5", context)
    """

    def evaluate(self, condition: Condition, context: ExecutionContext) -> bool:
        """Evaluate an expression string or a legacy structured condition.

        Args:
            condition: Expression string, StructuredCondition, or a
                ``{field, op, value}`` mapping.
            context: The run's execution context.

        Returns:
            Boolean result; False whenever the condition cannot be decided.
        """
        if isinstance(condition, str):
            return self.evaluate_expression(condition, context)
        if isinstance(condition, Mapping):
            try:
                condition = StructuredCondition.model_validate(condition)
            except ValueError:
                logger.warning("Invalid structured condition: %s", condition)
                return False
        if isinstance(condition, StructuredCondition):
            return self.evaluate_structured(condition, context)
        logger.warning("Unsupported condition type: %s", type(condition).__name__)
        return False

    def evaluate_expression(self, expression: str, context: ExecutionContext) -> bool:
        """Evaluate a flat AND/OR expression."""
        expression = expression.strip()

        if " OR " in expression:
            return any(
                self.evaluate_expression(part, context) for part in expression.split(" OR ")
            )

        if " AND " in expression:
            return all(
                self.evaluate_expression(part, context) for part in expression.split(" AND ")
            )

        return self._evaluate_leaf(expression, context)

    def evaluate_structured(self, condition: StructuredCondition, context: ExecutionContext) -> bool:
        """Evaluate a legacy ``{field, op, value}`` condition."""
        left = context.resolve(condition.field)
        right = MISSING if condition.value is None else condition.value
        return compare(left, condition.op, right)

    def is_well_formed(self, expression: str) -> bool:
        """Whether every leaf of an expression matches the leaf grammar."""
        parts = [
            leaf
            for disjunct in expression.strip().split(" OR ")
            for leaf in disjunct.split(" AND ")
        ]
        return all(LEAF_PATTERN.match(part.strip()) for part in parts)

    # -------------------------------------------------------------------------
    # Leaves
    # -------------------------------------------------------------------------

    def _evaluate_leaf(self, leaf: str, context: ExecutionContext) -> bool:
        match = LEAF_PATTERN.match(leaf)
        if not match:
            logger.warning("Invalid expression format: %s", leaf)
            return False

        field, op, literal = match.groups()
        left = context.resolve(field)
        right = self._resolve_literal(literal, context)
        return compare(left, op, right)

    def _resolve_literal(self, literal: str, context: ExecutionContext) -> Any:
        # Underscore digit grouping is not a number literal here
        if "_" not in literal:
            try:
                number = float(literal)
            except ValueError:
                pass
            else:
                if math.isfinite(number):
                    return number
        return context.resolve(literal)


def compare(left: Any, op: str, right: Any) -> bool:
    """Apply a comparison operator; undefined or incomparable operands are False."""
    if left is MISSING or right is MISSING:
        return False
    op_func: Optional[Callable[[Any, Any], bool]] = COMPARISON_OPS.get(op)
    if op_func is None:
        return False
    try:
        return bool(op_func(left, right))
    except TypeError:
        return False
