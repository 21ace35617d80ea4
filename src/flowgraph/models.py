"""
Workflow Models - JSON structures for the visual workflow graph.

These models match the JSON shape the canvas produces and the persistence
layer stores: camelCase keys on the wire, snake_case attributes in Python.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SaveStatus(str, Enum):
    """Persistence state of the open workflow document."""
    SAVED = "saved"
    UNSAVED = "unsaved"
    SAVING = "saving"


class PublishStatus(str, Enum):
    """Lifecycle status of a workflow."""
    DRAFT = "draft"
    PUBLISHED = "published"


class Position(BaseModel):
    """Node position on the canvas."""
    x: float = 0
    y: float = 0


class NodeData(BaseModel):
    """
    Node payload edited through the settings panel.

    ``params`` holds user-set parameter values; string values may contain
    ``{{ node_name.field }}`` references.
    """
    model_config = ConfigDict(extra="allow")

    label: str = ""
    type: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)


class Node(BaseModel):
    """
    A node placed on the workflow canvas.

    ``id`` is the node's allocated name (e.g. ``input_0``) and is what
    template references use to address it.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., description="Node ID, unique within the workflow")
    type: str = Field(..., description="Node type, selects the executor")
    position: Position = Field(default_factory=Position)
    data: NodeData = Field(default_factory=NodeData)

    @model_validator(mode="before")
    @classmethod
    def _fill_data_defaults(cls, values: Any) -> Any:
        # Older saves omit label/type inside data
        if not isinstance(values, dict):
            return values
        node_type = values.get("type")
        data = values.get("data")
        if data is None:
            data = {}
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("label"):
                data["label"] = node_type or ""
            if not data.get("type"):
                data["type"] = node_type or ""
            if data.get("params") is None:
                data["params"] = {}
            values = {**values, "data": data}
        return values

    @property
    def name(self) -> str:
        """Variable name used in ``{{ name.field }}`` references."""
        return self.id

    @property
    def params(self) -> Dict[str, Any]:
        return self.data.params


class Connection(BaseModel):
    """Payload of a connect gesture between two handles."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    source: str
    target: str
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")


def make_edge_id(
    source: str,
    target: str,
    source_handle: Optional[str] = None,
    target_handle: Optional[str] = None,
) -> str:
    """Build the canvas-style edge ID for a connection."""
    return f"reactflow__edge-{source}{source_handle or ''}-{target}{target_handle or ''}"


class Edge(BaseModel):
    """
    A directed edge between two nodes.

    ``target`` depends on ``source``: it runs after it and may reference
    its outputs.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., description="Edge ID")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")
    type: str = Field("smoothstep", description="Edge rendering type")
    animated: bool = True

    @property
    def key(self) -> tuple:
        """Identity used for duplicate-edge suppression."""
        return (self.source, self.target, self.source_handle)


class Workflow(BaseModel):
    """
    Complete workflow document.

    ``id`` is None until the workflow is saved for the first time.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(None, description="Workflow ID")
    name: str = Field("New Workflow", description="Workflow name")
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    status: PublishStatus = Field(PublishStatus.DRAFT)
    save_status: SaveStatus = Field(SaveStatus.UNSAVED, alias="saveStatus")

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_edges_from(self, node_id: str) -> List[Edge]:
        """Get all edges originating from a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_edges_to(self, node_id: str) -> List[Edge]:
        """Get all edges pointing to a node."""
        return [e for e in self.edges if e.target == node_id]

    def get_upstream_nodes(self, node_id: str) -> List[str]:
        """Get IDs of nodes that connect to this node, without duplicates."""
        upstream: List[str] = []
        for edge in self.get_edges_to(node_id):
            if edge.source not in upstream:
                upstream.append(edge.source)
        return upstream

    def get_downstream_nodes(self, node_id: str) -> List[str]:
        """Get IDs of nodes connected to this node's outputs, without duplicates."""
        downstream: List[str] = []
        for edge in self.get_edges_from(node_id):
            if edge.target not in downstream:
                downstream.append(edge.target)
        return downstream

    def to_json(self) -> str:
        """Serialize in the persisted camelCase shape."""
        return self.model_dump_json(by_alias=True, indent=2)

    def same_content(self, other: "Workflow") -> bool:
        """Compare documents ignoring volatile fields like ``save_status``."""
        return (
            self.id == other.id
            and self.name == other.name
            and self.status == other.status
            and self.nodes == other.nodes
            and self.edges == other.edges
        )


class WorkflowExport(BaseModel):
    """Downloadable export document. ``version`` is not interpreted yet."""
    model_config = ConfigDict(populate_by_name=True)

    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    timestamp: str
    version: str


_EXPORT_ONLY_KEYS = ("timestamp", "version")


def parse_workflow(data: Dict[str, Any]) -> Workflow:
    """
    Parse workflow JSON into a Workflow.

    Accepts full workflow documents as well as export documents, which
    carry only nodes and edges.
    """
    data = {k: v for k, v in data.items() if k not in _EXPORT_ONLY_KEYS}
    return Workflow.model_validate(data)


__all__ = [
    "SaveStatus",
    "PublishStatus",
    "Position",
    "NodeData",
    "Node",
    "Connection",
    "Edge",
    "Workflow",
    "WorkflowExport",
    "make_edge_id",
    "parse_workflow",
]
