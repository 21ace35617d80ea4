"""
flowgraph - workflow graph state engine.

Node/edge document store with stable node names, ``{{ name.field }}``
variable resolution and an async orchestrator that runs the graph in
dependency order with per-node failure isolation.
"""

from .errors import (
    FlowgraphError,
    GraphCycleError,
    NodeExecutionError,
    PersistenceError,
    UnresolvedVariableError,
    WorkflowValidationError,
)
from .executors import (
    ExecutorRegistry,
    FunctionExecutor,
    NodeExecutor,
    create_default_registry,
    with_timeout,
)
from .graph import CompiledGraph, compute_execution_order
from .models import (
    Connection,
    Edge,
    Node,
    NodeData,
    Position,
    PublishStatus,
    SaveStatus,
    Workflow,
    WorkflowExport,
    parse_workflow,
)
from .naming import NamingRegistry
from .orchestrator import (
    ExecutionOrchestrator,
    NodeRunResult,
    NodeStatus,
    RunReport,
    RunStatus,
)
from .store import DocumentState, WorkflowGraphStore
from .validation import ValidationIssue, validate_workflow
from .variables import (
    VariableReference,
    extract_references,
    parse_template,
    resolve,
    resolve_params,
    resolve_text,
    suggest_references,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    "Connection",
    "Edge",
    "Node",
    "NodeData",
    "Position",
    "PublishStatus",
    "SaveStatus",
    "Workflow",
    "WorkflowExport",
    "parse_workflow",
    # Store
    "DocumentState",
    "NamingRegistry",
    "WorkflowGraphStore",
    # Variables
    "VariableReference",
    "extract_references",
    "parse_template",
    "resolve",
    "resolve_params",
    "resolve_text",
    "suggest_references",
    # Execution
    "CompiledGraph",
    "compute_execution_order",
    "ExecutorRegistry",
    "FunctionExecutor",
    "NodeExecutor",
    "create_default_registry",
    "with_timeout",
    "ExecutionOrchestrator",
    "NodeRunResult",
    "NodeStatus",
    "RunReport",
    "RunStatus",
    "ValidationIssue",
    "validate_workflow",
    # Errors
    "FlowgraphError",
    "GraphCycleError",
    "NodeExecutionError",
    "PersistenceError",
    "UnresolvedVariableError",
    "WorkflowValidationError",
]
