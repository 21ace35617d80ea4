"""
Compiled Graph - dependency view of a workflow snapshot.

Takes a Workflow and compiles it into upstream/downstream adjacency plus a
topological execution order. A node depends on the source of every edge
that targets it.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .errors import GraphCycleError
from .models import Node, Workflow


logger = logging.getLogger(__name__)


@dataclass
class CompiledNode:
    """
    A node in the compiled graph with its dependencies.
    """
    node: Node
    index: int
    upstream: List[str] = field(default_factory=list)
    downstream: List[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def node_type(self) -> str:
        return self.node.type


class CompiledGraph:
    """
    Workflow compiled for execution.

    Contains:
    - Nodes with their (deduplicated) upstream and downstream IDs
    - Topological order, ties broken by node insertion order

    Edges that reference unknown node IDs are ignored.

    Raises:
        GraphCycleError: If the graph has a cycle
    """

    def __init__(self, workflow: Workflow):
        self.workflow_id = workflow.id
        self.workflow_name = workflow.name
        self._workflow = workflow

        self._nodes: Dict[str, CompiledNode] = {}
        self._build_nodes()

        self._execution_order: List[str] = []
        self._compute_execution_order()

    def _build_nodes(self) -> None:
        """Build compiled nodes with connections."""
        for index, node in enumerate(self._workflow.nodes):
            self._nodes[node.id] = CompiledNode(node=node, index=index)

        for edge in self._workflow.edges:
            source = self._nodes.get(edge.source)
            target = self._nodes.get(edge.target)
            if source is None or target is None:
                logger.debug(f"Ignoring edge {edge.id} with unknown endpoint")
                continue
            if edge.target not in source.downstream:
                source.downstream.append(edge.target)
            if edge.source not in target.upstream:
                target.upstream.append(edge.source)

    def _compute_execution_order(self) -> None:
        """
        Compute topological order for execution.

        Uses Kahn's algorithm: repeatedly extract zero in-degree nodes.
        Whatever is left once none remain lies on or behind a cycle.
        """
        in_degree: Dict[str, int] = {
            node_id: len(node.upstream) for node_id, node in self._nodes.items()
        }

        queue = [
            (node.index, node_id)
            for node_id, node in self._nodes.items()
            if in_degree[node_id] == 0
        ]
        heapq.heapify(queue)
        order: List[str] = []

        while queue:
            _, node_id = heapq.heappop(queue)
            order.append(node_id)

            for downstream_id in self._nodes[node_id].downstream:
                in_degree[downstream_id] -= 1
                if in_degree[downstream_id] == 0:
                    heapq.heappush(queue, (self._nodes[downstream_id].index, downstream_id))

        if len(order) != len(self._nodes):
            remaining = set(self._nodes) - set(order)
            raise GraphCycleError(remaining)

        self._execution_order = order

    @property
    def execution_order(self) -> List[str]:
        """Get node IDs in execution order."""
        return self._execution_order.copy()

    @property
    def node_ids(self) -> List[str]:
        return list(self._nodes.keys())

    def get_node(self, node_id: str) -> Optional[CompiledNode]:
        return self._nodes.get(node_id)

    def get_start_nodes(self) -> List[str]:
        """Entry point node IDs (no upstream)."""
        return [node_id for node_id in self._execution_order if not self._nodes[node_id].upstream]

    def get_ready_nodes(self, terminal: Set[str], dispatched: Iterable[str] = ()) -> List[str]:
        """
        Nodes ready to execute, in execution order.

        A node is ready when every upstream node is in ``terminal`` and the
        node itself is neither terminal nor already dispatched.
        """
        dispatched = set(dispatched)
        return [
            node_id
            for node_id in self._execution_order
            if node_id not in terminal
            and node_id not in dispatched
            and all(up in terminal for up in self._nodes[node_id].upstream)
        ]

    def get_descendants(self, node_id: str) -> List[str]:
        """All nodes reachable downstream of ``node_id``, in execution order."""
        seen: Set[str] = set()
        stack = list(self._nodes[node_id].downstream) if node_id in self._nodes else []
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._nodes[current].downstream)
        return [n for n in self._execution_order if n in seen]


def compute_execution_order(workflow: Workflow) -> List[str]:
    """Topological order of ``workflow``'s node IDs; raises GraphCycleError."""
    return CompiledGraph(workflow).execution_order


__all__ = [
    "CompiledGraph",
    "CompiledNode",
    "compute_execution_order",
]
