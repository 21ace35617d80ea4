"""Pre-flight checks for a workflow before it is run."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence

from flowgraph.errors import GraphCycleError
from flowgraph.executors.registry import ExecutorRegistry
from flowgraph.graph import CompiledGraph
from flowgraph.models import Node, Workflow
from flowgraph.variables import collect_references


class IssueLevel(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"  # The node (or the whole run) will fail
    WARNING = "warning"  # The run proceeds, output may be incomplete


@dataclass
class ValidationIssue:
    """A single problem found in a workflow."""

    level: IssueLevel
    message: str
    node_id: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "message": self.message, "node_id": self.node_id}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, dict)) and not value:
        return True
    return False


def missing_required_params(node: Node, required: Sequence[str]) -> List[str]:
    """
    Required params that are absent or empty on ``node``.

    Checked on the raw params: a param holding only a variable reference
    counts as present.
    """
    return [name for name in required if _is_missing(node.data.params.get(name))]


def validate_workflow(workflow: Workflow, registry: ExecutorRegistry) -> List[ValidationIssue]:
    """
    Validate the workflow graph structure and node params.

    Returns a list of issues (empty = valid).
    """
    issues: List[ValidationIssue] = []
    node_ids = {node.id for node in workflow.nodes}

    seen: set[str] = set()
    for node in workflow.nodes:
        if node.id in seen:
            issues.append(ValidationIssue(IssueLevel.ERROR, f"Duplicate node ID '{node.id}'", node.id))
        seen.add(node.id)

    for edge in workflow.edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            issues.append(ValidationIssue(
                IssueLevel.WARNING,
                f"Edge {edge.id} references an unknown node ({edge.source} -> {edge.target})",
            ))
        elif edge.source == edge.target:
            issues.append(ValidationIssue(IssueLevel.ERROR, f"Edge {edge.id} is a self-loop", edge.source))

    try:
        CompiledGraph(workflow)
    except GraphCycleError as e:
        issues.append(ValidationIssue(IssueLevel.ERROR, str(e)))

    for node in workflow.nodes:
        if node.type not in registry:
            issues.append(ValidationIssue(
                IssueLevel.ERROR,
                f"No executor registered for node type '{node.type}'",
                node.id,
            ))
            continue

        missing = missing_required_params(node, registry.required_params(node.type))
        if missing:
            issues.append(ValidationIssue(
                IssueLevel.ERROR,
                f"Missing required params: {', '.join(missing)}",
                node.id,
            ))

        upstream = set(workflow.get_upstream_nodes(node.id))
        for ref in collect_references(node.data.params):
            if ref.source_node_name not in node_ids:
                issues.append(ValidationIssue(
                    IssueLevel.WARNING,
                    f"Reference {ref} points to an unknown node",
                    node.id,
                ))
            elif ref.source_node_name not in upstream:
                issues.append(ValidationIssue(
                    IssueLevel.WARNING,
                    f"Reference {ref} points to a node that is not connected upstream",
                    node.id,
                ))
            else:
                fields = registry.output_fields(workflow.get_node(ref.source_node_name).type)
                if fields and ref.field not in fields:
                    issues.append(ValidationIssue(
                        IssueLevel.WARNING,
                        f"Reference {ref} uses a field the source node does not declare",
                        node.id,
                    ))

    return issues


__all__ = [
    "IssueLevel",
    "ValidationIssue",
    "missing_required_params",
    "validate_workflow",
]
