"""
Workflow Graph Store - the single source of truth for the open workflow.

Holds the node/edge graph plus document metadata and keeps it consistent
under editor gestures:

- every node has a unique, human-readable name allocated per type
- removing a node removes every edge touching it
- bulk loads never leave edges pointing at unknown nodes

The store is a plain object owned by its caller. Every state change hands
a fresh snapshot to the subscribed listeners.

Document lifecycle::

    UNINITIALIZED --load--> LOADING --ok--> READY(saved)
                                   \\--error--> previous state
    READY: any edit -> unsaved; save -> saving -> saved | unsaved
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from .config import get_settings
from .errors import PersistenceError
from .models import (
    Connection,
    Edge,
    Node,
    NodeData,
    Position,
    PublishStatus,
    SaveStatus,
    Workflow,
    make_edge_id,
)
from .naming import NamingRegistry
from .observability import get_logger, with_run_context
from .variables import ResolvedText, resolve_text


logger = get_logger(__name__)

Listener = Callable[[Workflow], None]
EdgesArg = Union[Iterable[Any], Callable[[List[Edge]], Iterable[Any]]]


class DocumentState(str, Enum):
    """Lifecycle state of the store's document."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class WorkflowSource(Protocol):
    """What the store needs from a persistence collaborator."""

    async def save(self, workflow: Workflow) -> None: ...

    async def load(self, workflow_id: str) -> Workflow: ...


class WorkflowGraphStore:
    """
    Mutable workflow document with graph invariants.

    Usage:
        store = WorkflowGraphStore()
        a = store.add_node("input", {"x": 0, "y": 0})
        b = store.add_node("openai", {"x": 200, "y": 0})
        store.on_connect({"source": a.id, "target": b.id})
        report = await orchestrator.run(store.snapshot())
    """

    def __init__(
        self,
        naming: Optional[NamingRegistry] = None,
        workflow: Optional[Workflow] = None,
    ):
        """
        Initialize the store.

        Args:
            naming: Naming registry (a fresh one if not provided)
            workflow: Optional document to open; the store starts
                uninitialized without one
        """
        self._settings = get_settings()
        self._naming = naming or NamingRegistry()
        self._listeners: List[Listener] = []
        self._revision = 0
        self._state = DocumentState.UNINITIALIZED
        self._workflow = Workflow(name=self._settings.default_workflow_name)

        if workflow is not None:
            self.set_workflow(workflow)

    # -- Read access --

    @property
    def state(self) -> DocumentState:
        return self._state

    @property
    def workflow_id(self) -> Optional[str]:
        return self._workflow.id

    @property
    def name(self) -> str:
        return self._workflow.name

    @property
    def status(self) -> PublishStatus:
        return self._workflow.status

    @property
    def save_status(self) -> SaveStatus:
        return self._workflow.save_status

    @property
    def revision(self) -> int:
        """Incremented on every content change."""
        return self._revision

    @property
    def nodes(self) -> List[Node]:
        return [node.model_copy(deep=True) for node in self._workflow.nodes]

    @property
    def edges(self) -> List[Edge]:
        return [edge.model_copy(deep=True) for edge in self._workflow.edges]

    @property
    def counters(self) -> Dict[str, int]:
        return self._naming.counters

    def get_node(self, node_id: str) -> Optional[Node]:
        node = self._workflow.get_node(node_id)
        return node.model_copy(deep=True) if node else None

    def get_node_by_name(self, name: str) -> Optional[Node]:
        """Look up a node by the name used in ``{{ name.field }}``."""
        for node in self._workflow.nodes:
            if node.name == name:
                return node.model_copy(deep=True)
        return None

    def snapshot(self) -> Workflow:
        """Deep copy of the current document."""
        return self._workflow.model_copy(deep=True)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` with a snapshot after every state change.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def preview_param(
        self,
        node_id: str,
        key: str,
        outputs: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> ResolvedText:
        """
        Resolve one param of a node for live preview.

        Raises:
            KeyError: If the node does not exist
        """
        node = self._workflow.get_node(node_id)
        if node is None:
            raise KeyError(node_id)
        return resolve_text(node.params.get(key, ""), self._workflow, outputs)

    # -- Node edits --

    def add_node(self, node_type: str, position: Union[Position, Mapping[str, float], None] = None) -> Node:
        """
        Create a node of ``node_type`` with a freshly allocated name.

        Returns:
            Copy of the created node
        """
        taken = set(self._workflow.node_ids)
        name = self._naming.allocate(node_type)
        while name in taken:
            name = self._naming.allocate(node_type)

        node = Node(
            id=name,
            type=node_type,
            position=Position.model_validate(position or {}),
            data=NodeData(label=node_type, type=node_type, params={}),
        )
        self._workflow.nodes.append(node)
        logger.debug(f"Node added: {name}", extra=self._context(node_id=name, node_type=node_type))
        self._changed()
        return node.model_copy(deep=True)

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it. No-op if absent."""
        if self._workflow.get_node(node_id) is None:
            logger.debug(f"remove_node ignored, unknown node: {node_id}", extra=self._context())
            return

        self._workflow.nodes = [n for n in self._workflow.nodes if n.id != node_id]
        before = len(self._workflow.edges)
        self._workflow.edges = [
            e for e in self._workflow.edges
            if e.source != node_id and e.target != node_id
        ]
        logger.debug(
            f"Node removed: {node_id} ({before - len(self._workflow.edges)} edges)",
            extra=self._context(node_id=node_id),
        )
        self._changed()

    def update_node_data(self, node_id: str, params: Mapping[str, Any]) -> None:
        """Shallow-merge ``params`` into the node's params. No-op if absent."""
        node = self._workflow.get_node(node_id)
        if node is None:
            logger.debug(f"update_node_data ignored, unknown node: {node_id}", extra=self._context())
            return
        node.data.params = {**node.data.params, **params}
        self._changed()

    def update_node_position(self, node_id: str, position: Union[Position, Mapping[str, float]]) -> None:
        """Move a node. No-op if absent."""
        node = self._workflow.get_node(node_id)
        if node is None:
            return
        node.position = Position.model_validate(position)
        self._changed()

    def set_nodes(self, nodes: Iterable[Any]) -> None:
        """
        Replace all nodes.

        Accepts Node objects or node dicts in the persisted shape. Edges left
        pointing at removed nodes are dropped.
        """
        self._workflow.nodes = self._normalize_nodes(nodes)
        self._observe_names()
        self._drop_dangling_edges()
        self._changed()

    # -- Edge edits --

    def set_edges(self, edges: EdgesArg) -> None:
        """
        Replace all edges.

        Args:
            edges: New edges, or a function ``old_edges -> new_edges``
        """
        if callable(edges):
            edges = edges(self.edges)
        self._workflow.edges = [self._normalize_edge(e) for e in edges]
        self._drop_dangling_edges()
        self._changed()

    def on_connect(self, connection: Union[Connection, Mapping[str, Any]]) -> Optional[Edge]:
        """
        Connect two nodes.

        Self-loops, unknown endpoints and duplicates of an existing
        ``(source, target, source_handle)`` edge are ignored.

        Returns:
            Copy of the new edge, or None if the connection was ignored
        """
        conn = connection if isinstance(connection, Connection) else Connection.model_validate(connection)
        node_ids = set(self._workflow.node_ids)

        if conn.source == conn.target:
            logger.debug(f"Ignoring self-loop on {conn.source}", extra=self._context())
            return None
        if conn.source not in node_ids or conn.target not in node_ids:
            logger.debug(f"Ignoring edge with unknown endpoint: {conn.source} -> {conn.target}", extra=self._context())
            return None
        key = (conn.source, conn.target, conn.source_handle)
        if any(e.key == key for e in self._workflow.edges):
            logger.debug(f"Ignoring duplicate edge: {conn.source} -> {conn.target}", extra=self._context())
            return None

        edge = Edge(
            id=make_edge_id(conn.source, conn.target, conn.source_handle, conn.target_handle),
            source=conn.source,
            target=conn.target,
            source_handle=conn.source_handle,
            target_handle=conn.target_handle,
            type=self._settings.default_edge_type,
            animated=self._settings.edge_animated,
        )
        self._workflow.edges.append(edge)
        logger.debug(f"Edge added: {edge.id}", extra=self._context())
        self._changed()
        return edge.model_copy(deep=True)

    def remove_edge(self, edge_id: str) -> None:
        """Remove one edge. No-op if absent."""
        remaining = [e for e in self._workflow.edges if e.id != edge_id]
        if len(remaining) == len(self._workflow.edges):
            return
        self._workflow.edges = remaining
        self._changed()

    # -- Document --

    def clear_workflow(self, preserve_name: bool = False) -> None:
        """
        Remove all nodes and edges and reset the name counters.

        Args:
            preserve_name: Keep the workflow name (soft clear); otherwise it
                goes back to the default (hard clear). The ID is kept either way.
        """
        self._workflow.nodes = []
        self._workflow.edges = []
        self._naming.reset()
        if not preserve_name:
            self._workflow.name = self._settings.default_workflow_name
        logger.debug(f"Workflow cleared (preserve_name={preserve_name})", extra=self._context())
        self._changed()

    def set_workflow_id(self, workflow_id: Optional[str]) -> None:
        self._workflow.id = workflow_id
        self._emit()

    def set_save_status(self, status: Union[SaveStatus, str]) -> None:
        self._workflow.save_status = SaveStatus(status)
        self._emit()

    def set_workflow_name(self, name: str) -> None:
        self._workflow.name = name
        self._changed()

    def set_status(self, status: Union[PublishStatus, str]) -> None:
        self._workflow.status = PublishStatus(status)
        self._changed()

    def set_workflow(self, workflow: Union[Workflow, Mapping[str, Any]]) -> None:
        """
        Open ``workflow`` in place of the current document.

        Counters restart and then observe the loaded names. A workflow that
        has an ID is considered saved, a new one unsaved.
        """
        if not isinstance(workflow, Workflow):
            workflow = Workflow.model_validate(workflow)

        self._workflow = Workflow(
            id=workflow.id,
            name=workflow.name.strip() or self._settings.untitled_workflow_name,
            status=workflow.status,
            nodes=self._normalize_nodes(workflow.nodes),
            edges=[self._normalize_edge(e) for e in workflow.edges],
            save_status=SaveStatus.SAVED if workflow.id else SaveStatus.UNSAVED,
        )
        self._naming.reset()
        self._observe_names()
        self._drop_dangling_edges()
        self._revision += 1
        self._state = DocumentState.READY
        self._emit()

    # -- Persistence --

    async def save(self, repository: WorkflowSource) -> str:
        """
        Save the document through ``repository``.

        A new workflow gets an ID first, dropped again if the save fails. If
        the document is edited while the save is in flight it stays unsaved.

        Returns:
            The workflow ID

        Raises:
            PersistenceError: If the repository fails; the document stays unsaved
        """
        if self._state == DocumentState.LOADING:
            raise PersistenceError("Cannot save while a workflow is loading", self._workflow.id)

        generated_id = self._workflow.id is None
        if generated_id:
            self._workflow.id = str(uuid.uuid4())
        workflow_id = self._workflow.id
        revision = self._revision
        self._state = DocumentState.READY

        self._workflow.save_status = SaveStatus.SAVING
        self._emit()
        document = self._workflow.model_copy(deep=True, update={"save_status": SaveStatus.SAVED})

        try:
            await repository.save(document)
        except Exception as e:
            self._workflow.save_status = SaveStatus.UNSAVED
            if generated_id:
                # A failed first save leaves the document new
                self._workflow.id = None
            self._emit()
            logger.warning(f"Workflow save failed: {e}", extra=self._context())
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to save workflow: {e}", workflow_id) from e

        if self._revision == revision:
            self._workflow.save_status = SaveStatus.SAVED
        else:
            self._workflow.save_status = SaveStatus.UNSAVED
        logger.info(
            f"Workflow saved: {self._workflow.name} ({self._workflow.save_status.value})",
            extra=self._context(),
        )
        self._emit()
        return workflow_id

    async def load(self, repository: WorkflowSource, workflow_id: str) -> Workflow:
        """
        Open the workflow ``workflow_id`` from ``repository``.

        Returns:
            Snapshot of the loaded document

        Raises:
            PersistenceError: If the repository fails; the previous document
                and state are kept
        """
        previous = self._state
        self._state = DocumentState.LOADING
        self._emit()

        try:
            workflow = await repository.load(workflow_id)
        except Exception as e:
            self._state = previous
            self._emit()
            logger.warning(
                f"Workflow load failed: {e}",
                extra=with_run_context(workflow_id=workflow_id),
            )
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to load workflow: {e}", workflow_id) from e

        self.set_workflow(workflow)
        self._workflow.save_status = SaveStatus.SAVED
        logger.info(
            f"Workflow loaded: {self._workflow.name} ({len(self._workflow.nodes)} nodes)",
            extra=self._context(),
        )
        self._emit()
        return self.snapshot()

    # -- Internals --

    def _context(self, **kwargs: Any) -> Dict[str, Any]:
        return with_run_context(workflow_id=self._workflow.id, **kwargs)

    def _normalize_node(self, node: Any) -> Node:
        if isinstance(node, Node):
            return Node.model_validate(node.model_dump(by_alias=True))
        return Node.model_validate(node)

    def _normalize_nodes(self, nodes: Iterable[Any]) -> List[Node]:
        """Normalize loaded nodes, keeping the first of any nodes sharing an ID."""
        kept: List[Node] = []
        seen = set()
        for raw in nodes:
            node = self._normalize_node(raw)
            if node.id in seen:
                logger.debug(f"Dropping duplicate node: {node.id}", extra=self._context())
                continue
            seen.add(node.id)
            kept.append(node)
        return kept

    def _normalize_edge(self, edge: Any) -> Edge:
        data = edge.model_dump(by_alias=True) if isinstance(edge, Edge) else dict(edge)
        if not data.get("type"):
            data["type"] = self._settings.default_edge_type
        if data.get("animated") is None:
            data["animated"] = self._settings.edge_animated
        return Edge.model_validate(data)

    def _observe_names(self) -> None:
        for node in self._workflow.nodes:
            self._naming.observe(node.name, node.type)

    def _drop_dangling_edges(self) -> None:
        node_ids = set(self._workflow.node_ids)
        kept: List[Edge] = []
        for edge in self._workflow.edges:
            if edge.source in node_ids and edge.target in node_ids:
                kept.append(edge)
            else:
                logger.debug(f"Dropping dangling edge: {edge.id}", extra=self._context())
        self._workflow.edges = kept

    def _changed(self) -> None:
        """Record a content change: the document becomes (or stays) unsaved."""
        self._revision += 1
        self._state = DocumentState.READY
        self._workflow.save_status = SaveStatus.UNSAVED
        self._emit()

    def _emit(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)


__all__ = [
    "DocumentState",
    "WorkflowGraphStore",
    "WorkflowSource",
]
