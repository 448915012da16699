"""Static structural validation of workflow graphs."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Set, Union

from pydantic import TypeAdapter, ValidationError

from rcaflow.core.exceptions import WorkflowValidationError
from rcaflow.core.workflow import NODE_TYPE_VALUES, BranchNode, CompositeNode, NodeType, Workflow
from rcaflow.execution.conditions import ConditionEvaluator
from rcaflow.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_NODES = 50
DEFAULT_MAX_DEPTH = 20

_WORKFLOW_ADAPTER = TypeAdapter(Workflow)


class WorkflowValidator:
    """Validates workflow definitions before they are stored or executed.

    Rules, checked in order (the first violation fails validation):
    1. The definition is an object with a non-empty ``nodes`` list
    2. Node count is within ``max_nodes``
    3. Every node is an object with a unique, non-empty string ``id``
    4. Every node ``type`` is one of the known node types
    5. Every node's parameters are well-formed
    6. The start node resolves: explicit ``start_node``, else the sole
       ``validation`` node
    7. Every outgoing pointer (``next``, branch routes/rules/default,
       composite steps) names a declared node
    8. Composite nodes declare an entry point
    9. The graph reachable from the start node has no cycle and no path
       deeper than ``max_depth``

    Usage:
        validator = WorkflowValidator()
        workflow = validator.validate(definition)
    """

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_nodes = max_nodes
        self.max_depth = max_depth
        self._conditions = ConditionEvaluator()

    @classmethod
    def from_settings(cls, settings: Any) -> "WorkflowValidator":
        return cls(max_nodes=settings.max_nodes, max_depth=settings.max_depth)

    def validate(self, definition: Union[Workflow, Mapping[str, Any]]) -> Workflow:
        """Validate a workflow definition.

        Args:
            definition: A Workflow or its raw mapping form.

        Returns:
            The parsed Workflow.

        Raises:
            WorkflowValidationError: On the first rule violation.
        """
        raw = self._as_mapping(definition)
        nodes = self._check_shape(raw)
        self._check_nodes(nodes)
        workflow = self._parse(raw)
        start_node = self._check_start_node(workflow)
        self._check_pointers(workflow)
        self._check_traversal(workflow, start_node)
        return workflow

    def is_valid(self, definition: Union[Workflow, Mapping[str, Any]]) -> bool:
        try:
            self.validate(definition)
        except WorkflowValidationError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Shape and nodes
    # -------------------------------------------------------------------------

    def _as_mapping(self, definition: Any) -> Mapping[str, Any]:
        if isinstance(definition, Workflow):
            return definition.model_dump(by_alias=True, exclude_none=True)
        if not isinstance(definition, Mapping):
            raise WorkflowValidationError("Workflow definition must be an object")
        return definition

    def _check_shape(self, raw: Mapping[str, Any]) -> List[Any]:
        nodes = raw.get("nodes")
        if not isinstance(nodes, list):
            raise WorkflowValidationError('Workflow "nodes" must be an array')
        if not nodes:
            raise WorkflowValidationError("Workflow must have at least one node")
        if len(nodes) > self.max_nodes:
            raise WorkflowValidationError(
                f"Workflow exceeds maximum node limit of {self.max_nodes}",
                context={"node_count": len(nodes)},
            )
        return nodes

    def _check_nodes(self, nodes: List[Any]) -> None:
        seen: Set[str] = set()
        for index, node in enumerate(nodes):
            if not isinstance(node, Mapping):
                raise WorkflowValidationError(f"Node at position {index} must be an object")
            node_id = node.get("id")
            if not isinstance(node_id, str) or not node_id.strip():
                raise WorkflowValidationError('All nodes must have an "id" property')
            if node_id in seen:
                raise WorkflowValidationError(f'Duplicate node id "{node_id}"')
            seen.add(node_id)

        for node in nodes:
            node_type = node.get("type")
            if not node_type:
                raise WorkflowValidationError(f'Node "{node["id"]}" missing "type"')
            if not isinstance(node_type, str) or node_type not in NODE_TYPE_VALUES:
                raise WorkflowValidationError(
                    f'Node "{node["id"]}" has invalid type "{node_type}"',
                    context={"allowed": sorted(NODE_TYPE_VALUES)},
                )

    def _parse(self, raw: Mapping[str, Any]) -> Workflow:
        try:
            return _WORKFLOW_ADAPTER.validate_python(dict(raw))
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise WorkflowValidationError(
                f"Invalid workflow definition at {location}: {first.get('msg')}",
                context={"errors": e.error_count()},
            ) from e

    # -------------------------------------------------------------------------
    # Graph checks
    # -------------------------------------------------------------------------

    def _check_start_node(self, workflow: Workflow) -> str:
        if workflow.start_node:
            if workflow.get_node(workflow.start_node) is None:
                raise WorkflowValidationError(
                    f'Start node "{workflow.start_node}" not found in nodes'
                )
            return workflow.start_node

        entries = [n.id for n in workflow.nodes if n.type == NodeType.VALIDATION]
        if not entries:
            raise WorkflowValidationError('Missing "start_node" and no "validation" node found')
        if len(entries) > 1:
            raise WorkflowValidationError(
                'Missing "start_node" and more than one "validation" node found',
                context={"candidates": entries},
            )
        return entries[0]

    def _check_pointers(self, workflow: Workflow) -> None:
        declared = set(workflow.node_ids)
        for node in workflow.nodes:
            for target in node.successors():
                if target not in declared:
                    raise WorkflowValidationError(
                        f'Node "{node.id}" points to non-existent node "{target}"'
                    )
            if isinstance(node, CompositeNode) and node.entry_point is None:
                raise WorkflowValidationError(
                    f'Composite node "{node.id}" declares no steps or entry point'
                )
            if isinstance(node, BranchNode):
                for rule in node.effective_rules:
                    if isinstance(rule.condition, str) and not self._conditions.is_well_formed(
                        rule.condition
                    ):
                        # Malformed rules evaluate to False at run time.
                        logger.warning(
                            "Branch %s has a malformed rule: %s", node.id, rule.condition
                        )

    def _check_traversal(self, workflow: Workflow, start_node: str) -> None:
        nodes: Dict[str, Any] = {n.id: n for n in workflow.nodes}
        heights: Dict[str, int] = {}
        on_path: Set[str] = set()

        def too_deep(node_id: str) -> WorkflowValidationError:
            return WorkflowValidationError(
                f'Max workflow depth exceeded at node "{node_id}"',
                context={"max_depth": self.max_depth},
            )

        # Returns the longest path length below node_id.
        def dfs(node_id: str, depth: int) -> int:
            if depth > self.max_depth:
                raise too_deep(node_id)
            if node_id in on_path:
                raise WorkflowValidationError(f'Cycle detected involving node "{node_id}"')
            if node_id in heights:
                if depth + heights[node_id] > self.max_depth:
                    raise too_deep(node_id)
                return heights[node_id]

            on_path.add(node_id)
            height = 0
            for target in nodes[node_id].successors():
                height = max(height, dfs(target, depth + 1) + 1)
            on_path.discard(node_id)
            heights[node_id] = height
            return height

        dfs(start_node, 0)

        unreachable = [node_id for node_id in nodes if node_id not in heights]
        if unreachable:
            logger.debug("Nodes unreachable from %s: %s", start_node, unreachable)


def validate_workflow(
    definition: Union[Workflow, Mapping[str, Any]],
    max_nodes: int = DEFAULT_MAX_NODES,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Workflow:
    """Validate with explicit limits; see WorkflowValidator."""
    return WorkflowValidator(max_nodes=max_nodes, max_depth=max_depth).validate(definition)
