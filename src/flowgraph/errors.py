"""Error hierarchy for the workflow graph engine."""
from typing import Any, Iterable


class FlowgraphError(Exception):
    """Base exception for flowgraph errors."""

    pass


class WorkflowValidationError(FlowgraphError):
    """Raised when a node is missing required params before execution."""

    def __init__(self, message: str, node_id: str | None = None, missing: Iterable[str] = ()):
        super().__init__(message)
        self.node_id = node_id
        self.missing = list(missing)


class GraphCycleError(FlowgraphError):
    """Raised when no execution order exists because the graph has a cycle."""

    def __init__(self, node_ids: Iterable[str]):
        self.node_ids = sorted(node_ids)
        super().__init__(f"Workflow has cycles involving: {', '.join(self.node_ids)}")


class UnresolvedVariableError(FlowgraphError):
    """
    A template reference that could not be resolved.

    Soft error: it is recorded as a warning, never raised by the resolver.
    """

    def __init__(self, reference: Any, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"{reference}: {reason}")


class NodeExecutionError(FlowgraphError):
    """Raised by a node executor; isolated to the failing node."""

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.node_id = node_id


class PersistenceError(FlowgraphError):
    """Raised when a save or load through a persistence collaborator fails."""

    def __init__(self, message: str, workflow_id: str | None = None):
        super().__init__(message)
        self.workflow_id = workflow_id


__all__ = [
    "FlowgraphError",
    "WorkflowValidationError",
    "GraphCycleError",
    "UnresolvedVariableError",
    "NodeExecutionError",
    "PersistenceError",
]
