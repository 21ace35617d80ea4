"""Tests for the workflow document models."""
from flowgraph.models import (
    Edge,
    Node,
    SaveStatus,
    Workflow,
    make_edge_id,
    parse_workflow,
)


class TestNode:
    """Test Node defaults."""

    def test_data_defaults_from_type(self):
        """label and type inside data default to the node type."""
        node = Node.model_validate({"id": "input_0", "type": "input"})

        assert node.data.label == "input"
        assert node.data.type == "input"
        assert node.data.params == {}
        assert node.name == "input_0"

    def test_null_params_become_empty(self):
        node = Node.model_validate({"id": "n", "type": "text", "data": {"label": "Text", "params": None}})

        assert node.data.label == "Text"
        assert node.params == {}

    def test_extra_fields_survive_round_trip(self):
        """Canvas-only keys are kept."""
        node = Node.model_validate({"id": "n", "type": "text", "selected": True, "width": 120})

        dumped = node.model_dump(by_alias=True)

        assert dumped["selected"] is True
        assert dumped["width"] == 120


class TestEdge:
    """Test Edge defaults and identity."""

    def test_defaults(self):
        edge = Edge.model_validate({"id": "e", "source": "a", "target": "b"})

        assert edge.type == "smoothstep"
        assert edge.animated is True
        assert edge.key == ("a", "b", None)

    def test_camel_case_handles(self):
        edge = Edge.model_validate({
            "id": "e", "source": "a", "target": "b",
            "sourceHandle": "out", "targetHandle": "in",
        })

        assert edge.source_handle == "out"
        assert edge.model_dump(by_alias=True)["targetHandle"] == "in"

    def test_make_edge_id(self):
        assert make_edge_id("a", "b") == "reactflow__edge-a-b"
        assert make_edge_id("a", "b", "out", "in") == "reactflow__edge-aout-bin"


class TestWorkflow:
    """Test Workflow helpers and serialization."""

    def test_new_workflow_defaults(self):
        workflow = Workflow()

        assert workflow.id is None
        assert workflow.name == "New Workflow"
        assert workflow.save_status == SaveStatus.UNSAVED

    def test_upstream_and_downstream_are_deduplicated(self, make_workflow):
        workflow = make_workflow(
            {"a": "text", "b": "text", "c": "text"},
            [("a", "b"), ("a", "b"), ("b", "c")],
        )

        assert workflow.get_upstream_nodes("b") == ["a"]
        assert workflow.get_downstream_nodes("a") == ["b"]
        assert workflow.get_upstream_nodes("a") == []

    def test_to_json_uses_camel_case(self, sample_workflow):
        text = sample_workflow.to_json()

        assert '"saveStatus"' in text
        assert Workflow.model_validate_json(text) == sample_workflow

    def test_same_content_ignores_save_status(self, sample_workflow):
        other = sample_workflow.model_copy(deep=True, update={"save_status": SaveStatus.SAVED})

        assert sample_workflow.same_content(other)

    def test_parse_workflow_accepts_export_document(self, sample_workflow):
        """Export-only keys are dropped when an export is opened."""
        data = {
            "nodes": [n.model_dump(by_alias=True) for n in sample_workflow.nodes],
            "edges": [e.model_dump(by_alias=True) for e in sample_workflow.edges],
            "timestamp": "2024-01-01T00:00:00+00:00",
            "version": "1.0.0",
        }

        workflow = parse_workflow(data)

        assert workflow.id is None
        assert workflow.node_ids == ["input_0", "transform_0", "output_0"]
        assert "timestamp" not in workflow.model_dump()
