"""
Execution Orchestrator - runs a workflow snapshot in dependency order.

Each node's string params are resolved against the outputs collected so far
and handed to the executor registered for its type. Failures stay with the
failing node: independent branches keep running, dependents are skipped.
Only a cycle aborts the whole run, before any executor is called.

Ready nodes that do not depend on each other may be dispatched concurrently
(``max_concurrency``); with ``max_concurrency=1`` the run is strictly
sequential in topological order.
"""

from __future__ import annotations

import asyncio
import time
import traceback
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .config import get_settings
from .errors import NodeExecutionError, WorkflowValidationError
from .executors.registry import ExecutorRegistry, invoke_executor
from .graph import CompiledGraph, CompiledNode
from .models import Node, Workflow
from .observability import get_logger, with_run_context
from .validation import missing_required_params
from .variables import resolve_params


logger = get_logger(__name__)


class NodeStatus(str, Enum):
    """Status of a node during a run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    """Overall run status."""
    COMPLETED = "completed"
    PARTIAL = "partial"  # Some nodes completed, some failed or were skipped
    FAILED = "failed"  # No node completed
    CANCELLED = "cancelled"


@dataclass
class NodeRunResult:
    """
    Result of running a single node.
    """
    node_id: str
    node_type: str
    status: NodeStatus
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_traceback: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    duration_ms: float = 0

    @property
    def is_success(self) -> bool:
        return self.status == NodeStatus.COMPLETED

    @property
    def is_error(self) -> bool:
        return self.status == NodeStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status.value,
            "durationMs": round(self.duration_ms, 3),
        }
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


@dataclass
class RunReport:
    """
    Result of a workflow run.
    """
    run_id: str
    workflow_id: Optional[str]
    overall_status: RunStatus
    per_node: Dict[str, NodeRunResult] = field(default_factory=dict)
    execution_order: List[str] = field(default_factory=list)
    duration_ms: float = 0

    @property
    def is_success(self) -> bool:
        return self.overall_status == RunStatus.COMPLETED

    @property
    def outputs(self) -> Dict[str, Dict[str, Any]]:
        """Outputs of completed nodes keyed by node ID."""
        return {
            node_id: result.output
            for node_id, result in self.per_node.items()
            if result.is_success and result.output is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "workflowId": self.workflow_id,
            "overallStatus": self.overall_status.value,
            "executionOrder": list(self.execution_order),
            "durationMs": round(self.duration_ms, 3),
            "perNode": {node_id: r.to_dict() for node_id, r in self.per_node.items()},
        }


def summarize_status(results: Mapping[str, NodeRunResult]) -> RunStatus:
    """Overall status from per-node results."""
    statuses = [r.status for r in results.values()]
    if NodeStatus.CANCELLED in statuses:
        return RunStatus.CANCELLED
    if all(s == NodeStatus.COMPLETED for s in statuses):
        return RunStatus.COMPLETED
    if any(s == NodeStatus.COMPLETED for s in statuses):
        return RunStatus.PARTIAL
    return RunStatus.FAILED


class ExecutionOrchestrator:
    """
    Async workflow orchestrator.

    Respects:
    - Node dependencies (topological order, fan-in waits for every upstream)
    - Failure isolation (failed node -> dependents skipped, others run)
    - Cooperative cancellation before each dispatch

    Usage:
        orchestrator = ExecutionOrchestrator(registry)
        report = await orchestrator.run(store.snapshot())
    """

    def __init__(
        self,
        registry: ExecutorRegistry,
        max_concurrency: Optional[int] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Node-type -> executor capability table
            max_concurrency: Nodes dispatched at once (settings default)
        """
        self._registry = registry
        self._max_concurrency = max_concurrency or get_settings().max_concurrency
        if self._max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @property
    def registry(self) -> ExecutorRegistry:
        return self._registry

    def plan(self, workflow: Workflow) -> List[str]:
        """Execution order for ``workflow``; raises GraphCycleError."""
        return CompiledGraph(workflow).execution_order

    async def run(
        self,
        workflow: Workflow,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        run_id: Optional[str] = None,
    ) -> RunReport:
        """
        Execute a workflow.

        Args:
            workflow: Workflow snapshot
            cancel_event: Set it to cancel the run between node dispatches
            run_id: Optional run ID (generated if not provided)

        Returns:
            RunReport with per-node outcomes

        Raises:
            GraphCycleError: If the graph has a cycle; no node is executed
        """
        start_time = time.perf_counter()
        run_id = run_id or uuid.uuid4().hex
        context = with_run_context(workflow_id=workflow.id, run_id=run_id)

        graph = CompiledGraph(workflow)
        logger.info(
            f"Run started: {len(graph.node_ids)} nodes",
            extra=context,
        )

        results = await self._execute_graph(graph, workflow, cancel_event, run_id)

        report = RunReport(
            run_id=run_id,
            workflow_id=workflow.id,
            overall_status=summarize_status(results),
            per_node={node_id: results[node_id] for node_id in graph.execution_order},
            execution_order=graph.execution_order,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        logger.info(
            f"Run finished: {report.overall_status.value}",
            extra={**context, "duration_ms": report.duration_ms},
        )
        return report

    async def _execute_graph(
        self,
        graph: CompiledGraph,
        workflow: Workflow,
        cancel_event: Optional[asyncio.Event],
        run_id: str,
    ) -> Dict[str, NodeRunResult]:
        """Dispatch ready nodes until every node is terminal."""
        results: Dict[str, NodeRunResult] = {}
        outputs: Dict[str, Dict[str, Any]] = {}
        terminal: Set[str] = set()
        running: Dict[asyncio.Task, str] = {}
        nodes_by_name = {node.name: node for node in workflow.nodes}

        def is_cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        try:
            while True:
                if not is_cancelled():
                    self._skip_blocked(graph, results, terminal, running.values())

                for node_id in graph.get_ready_nodes(terminal, running.values()):
                    if len(running) >= self._max_concurrency or is_cancelled():
                        break
                    compiled = graph.get_node(node_id)
                    logger.debug(
                        f"Dispatching node: {node_id} ({compiled.node_type})",
                        extra=with_run_context(run_id=run_id, node_id=node_id, node_type=compiled.node_type),
                    )
                    task = asyncio.create_task(
                        self._execute_node(compiled, nodes_by_name, outputs, run_id)
                    )
                    running[task] = node_id

                if not running:
                    break

                done, _ = await asyncio.wait(running.keys(), return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    node_id = running.pop(task)
                    if task.cancelled():
                        # The executor raised CancelledError itself
                        result = NodeRunResult(
                            node_id=node_id,
                            node_type=graph.get_node(node_id).node_type,
                            status=NodeStatus.FAILED,
                            error="Node execution was cancelled by its executor",
                        )
                        logger.warning(
                            f"Node {node_id} failed: executor cancelled",
                            extra=with_run_context(run_id=run_id, node_id=node_id),
                        )
                    else:
                        result = task.result()
                    if is_cancelled():
                        # Dispatched before the cancel; its result is discarded
                        result.status = NodeStatus.CANCELLED
                        result.output = None
                    elif result.is_success:
                        outputs[node_id] = result.output or {}
                    results[node_id] = result
                    terminal.add(node_id)
        finally:
            for task in running:
                task.cancel()

        for node_id in graph.execution_order:
            if node_id not in results:
                compiled = graph.get_node(node_id)
                results[node_id] = NodeRunResult(
                    node_id=node_id,
                    node_type=compiled.node_type,
                    status=NodeStatus.CANCELLED,
                )

        return results

    def _skip_blocked(
        self,
        graph: CompiledGraph,
        results: Dict[str, NodeRunResult],
        terminal: Set[str],
        running: Iterable[str],
    ) -> None:
        """
        Mark ready nodes with a non-completed upstream as skipped.

        Repeats until stable so skips propagate through whole chains.
        """
        changed = True
        while changed:
            changed = False
            for node_id in graph.get_ready_nodes(terminal, running):
                compiled = graph.get_node(node_id)
                blocked = [
                    up for up in compiled.upstream
                    if results[up].status != NodeStatus.COMPLETED
                ]
                if not blocked:
                    continue
                results[node_id] = NodeRunResult(
                    node_id=node_id,
                    node_type=compiled.node_type,
                    status=NodeStatus.SKIPPED,
                    error=f"Upstream not completed: {', '.join(blocked)}",
                )
                terminal.add(node_id)
                changed = True

    async def _execute_node(
        self,
        compiled: CompiledNode,
        nodes_by_name: Dict[str, Node],
        outputs: Dict[str, Dict[str, Any]],
        run_id: str,
    ) -> NodeRunResult:
        """Execute a single node. Never raises for node-level failures."""
        start_time = time.perf_counter()
        node = compiled.node
        warnings: List[str] = []

        try:
            executor = self._registry.get(node.type)
            if executor is None:
                raise NodeExecutionError(
                    f"No executor registered for node type '{node.type}'",
                    node_id=node.id,
                )

            missing = missing_required_params(node, getattr(executor, "required_params", ()))
            if missing:
                raise WorkflowValidationError(
                    f"Missing required params: {', '.join(missing)}",
                    node_id=node.id,
                    missing=missing,
                )

            params, unresolved = resolve_params(node.data.params, nodes_by_name, outputs)
            warnings = [str(w) for w in unresolved]

            output = await invoke_executor(executor, params)

            return NodeRunResult(
                node_id=node.id,
                node_type=node.type,
                status=NodeStatus.COMPLETED,
                output=dict(output),
                warnings=warnings,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        except Exception as e:
            logger.warning(
                f"Node {node.id} failed: {e}",
                extra=with_run_context(run_id=run_id, node_id=node.id, node_type=node.type),
            )
            return NodeRunResult(
                node_id=node.id,
                node_type=node.type,
                status=NodeStatus.FAILED,
                error=str(e),
                error_traceback=traceback.format_exc(),
                warnings=warnings,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )


__all__ = [
    "ExecutionOrchestrator",
    "NodeRunResult",
    "NodeStatus",
    "RunReport",
    "RunStatus",
    "summarize_status",
]
