"""Tests for the workflow graph store."""
import asyncio

import pytest

from flowgraph.errors import PersistenceError
from flowgraph.models import Edge, PublishStatus, SaveStatus, Workflow
from flowgraph.naming import NamingRegistry
from flowgraph.persistence import InMemoryWorkflowRepository
from flowgraph.store import DocumentState, WorkflowGraphStore


def connect(store, source, target, **handles):
    return store.on_connect({"source": source, "target": target, **handles})


class TestNodes:
    """Test node edits."""

    def test_add_node(self, store):
        node = store.add_node("input", {"x": 10, "y": 20})

        assert node.id == "input_0"
        assert node.data.label == "input"
        assert node.data.type == "input"
        assert node.data.params == {}
        assert node.position.x == 10
        assert store.save_status == SaveStatus.UNSAVED
        assert store.state == DocumentState.READY

    def test_names_unique_per_type(self, store):
        ids = [store.add_node(t).id for t in ["input", "openai", "input", "openai"]]

        assert ids == ["input_0", "openai_0", "input_1", "openai_1"]

    def test_names_not_reused_after_removal(self, store):
        first = store.add_node("openai")
        store.remove_node(first.id)

        assert store.add_node("openai").id == "openai_1"

    def test_allocation_skips_taken_names(self, store):
        """A name held by a node of another type is not handed out."""
        store.set_nodes([{"id": "text_1", "type": "legacy"}])

        assert store.add_node("text").id == "text_0"
        assert store.add_node("text").id == "text_2"

    def test_loaded_names_raise_counters(self):
        store = WorkflowGraphStore(naming=NamingRegistry({"text": 0}))
        store.set_nodes([{"id": "text_4", "type": "text"}])

        assert store.add_node("text").id == "text_5"
        # Counters keep moving forward from the loaded name
        assert store.add_node("text").id == "text_6"

    def test_remove_node_cascades_edges(self, store):
        a = store.add_node("input")
        b = store.add_node("text")
        c = store.add_node("output")
        connect(store, a.id, b.id)
        connect(store, b.id, c.id)
        connect(store, a.id, c.id)

        store.remove_node(b.id)

        assert [n.id for n in store.nodes] == [a.id, c.id]
        assert [(e.source, e.target) for e in store.edges] == [(a.id, c.id)]

    def test_remove_missing_node_is_noop(self, store):
        store.add_node("input")
        store.set_save_status(SaveStatus.SAVED)
        revision = store.revision

        store.remove_node("ghost")

        assert store.revision == revision
        assert store.save_status == SaveStatus.SAVED

    def test_update_node_data_merges(self, store):
        node = store.add_node("openai")
        store.update_node_data(node.id, {"prompt": "hi", "model": "x"})

        store.update_node_data(node.id, {"model": "y"})

        assert store.get_node(node.id).params == {"prompt": "hi", "model": "y"}

    def test_update_missing_node_is_noop(self, store):
        store.update_node_data("ghost", {"a": 1})
        store.update_node_position("ghost", {"x": 1, "y": 1})

        assert store.state == DocumentState.UNINITIALIZED

    def test_update_node_position(self, store):
        node = store.add_node("text")

        store.update_node_position(node.id, {"x": 5, "y": 6})

        assert store.get_node(node.id).position.y == 6

    def test_returned_nodes_are_copies(self, store):
        node = store.add_node("text")
        node.data.params["leak"] = True

        assert store.get_node(node.id).params == {}
        assert store.get_node_by_name(node.id).id == node.id
        assert store.get_node_by_name("ghost") is None


class TestEdges:
    """Test edge edits."""

    def test_on_connect(self, store):
        a = store.add_node("input")
        b = store.add_node("text")

        edge = connect(store, a.id, b.id)

        assert edge.id == "reactflow__edge-input_0-text_0"
        assert edge.type == "smoothstep"
        assert edge.animated is True

    def test_on_connect_ignores_invalid(self, store):
        a = store.add_node("input")
        b = store.add_node("text")
        connect(store, a.id, b.id)
        revision = store.revision

        assert connect(store, a.id, a.id) is None
        assert connect(store, a.id, "ghost") is None
        assert connect(store, a.id, b.id) is None
        assert store.revision == revision
        assert len(store.edges) == 1

    def test_same_pair_on_another_handle_is_allowed(self, store):
        a = store.add_node("input")
        b = store.add_node("text")
        connect(store, a.id, b.id, sourceHandle="out1")

        edge = connect(store, a.id, b.id, sourceHandle="out2")

        assert edge is not None
        assert len(store.edges) == 2

    def test_edge_type_from_settings(self, monkeypatch):
        monkeypatch.setenv("FLOWGRAPH_DEFAULT_EDGE_TYPE", "bezier")
        monkeypatch.setenv("FLOWGRAPH_EDGE_ANIMATED", "false")
        store = WorkflowGraphStore()
        a = store.add_node("input")
        b = store.add_node("text")

        edge = connect(store, a.id, b.id)

        assert edge.type == "bezier"
        assert edge.animated is False

    def test_remove_edge(self, store):
        a = store.add_node("input")
        b = store.add_node("text")
        edge = connect(store, a.id, b.id)

        store.remove_edge("ghost")
        assert len(store.edges) == 1

        store.remove_edge(edge.id)
        assert store.edges == []


class TestBulkReplace:
    """Test set_nodes / set_edges."""

    def test_set_nodes_drops_dangling_edges(self, store):
        a = store.add_node("input")
        b = store.add_node("text")
        connect(store, a.id, b.id)

        store.set_nodes([store.get_node(a.id)])

        assert store.edges == []

    def test_set_edges_drops_dangling_and_normalizes(self, store):
        store.set_nodes([{"id": "a", "type": "input"}, {"id": "b", "type": "text"}])

        store.set_edges([
            {"id": "e1", "source": "a", "target": "b", "type": "", "animated": None},
            {"id": "e2", "source": "a", "target": "ghost"},
        ])

        edges = store.edges
        assert [e.id for e in edges] == ["e1"]
        assert edges[0].type == "smoothstep"
        assert edges[0].animated is True

    def test_set_edges_with_function(self, store):
        store.set_nodes([{"id": "a", "type": "input"}, {"id": "b", "type": "text"}])
        store.set_edges([{"id": "e1", "source": "a", "target": "b"}])

        store.set_edges(lambda old: old + [Edge(id="e2", source="b", target="a")])

        assert [e.id for e in store.edges] == ["e1", "e2"]

    def test_set_nodes_drops_duplicate_ids(self, store):
        """The first node with a given ID wins."""
        store.set_nodes([
            {"id": "input_0", "type": "input"},
            {"id": "input_0", "type": "text"},
            {"id": "text_0", "type": "text"},
        ])

        nodes = store.nodes
        assert [n.id for n in nodes] == ["input_0", "text_0"]
        assert nodes[0].type == "input"

        store.remove_node("input_0")
        assert [n.id for n in store.nodes] == ["text_0"]

    def test_set_workflow_drops_duplicate_ids(self, sample_workflow):
        sample_workflow.nodes.append(sample_workflow.nodes[0].model_copy(deep=True))

        store = WorkflowGraphStore(workflow=sample_workflow)

        assert [n.id for n in store.nodes] == ["input_0", "transform_0", "output_0"]

    def test_set_nodes_normalizes_data(self, store):
        store.set_nodes([{"id": "input_3", "type": "input", "data": {"params": None}}])

        node = store.get_node("input_3")
        assert node.data.label == "input"
        assert node.params == {}
        assert store.counters == {"input": 4}


class TestDocument:
    """Test document-level operations."""

    def test_clear_workflow_hard(self, store):
        store.set_workflow_id("wf-1")
        store.set_workflow_name("My Flow")
        store.add_node("input")

        store.clear_workflow(preserve_name=False)

        assert store.nodes == [] and store.edges == []
        assert store.counters == {}
        assert store.name == "New Workflow"
        assert store.workflow_id == "wf-1"

    def test_clear_workflow_soft_keeps_name(self, store):
        store.set_workflow_name("My Flow")
        store.add_node("input")

        store.clear_workflow(preserve_name=True)

        assert store.name == "My Flow"
        assert store.add_node("input").id == "input_0"

    def test_clear_is_idempotent(self, store):
        store.add_node("input")
        store.clear_workflow(True)
        first = store.snapshot()

        store.clear_workflow(True)

        assert store.snapshot().same_content(first)

    def test_metadata_setters(self, store):
        store.set_workflow_id("wf-9")
        store.set_save_status("saved")

        assert store.workflow_id == "wf-9"
        assert store.save_status == SaveStatus.SAVED
        assert store.revision == 0

        store.set_status("published")
        assert store.status == PublishStatus.PUBLISHED
        assert store.save_status == SaveStatus.UNSAVED

    def test_set_workflow(self, sample_workflow):
        store = WorkflowGraphStore()
        sample_workflow.name = "   "

        store.set_workflow(sample_workflow)

        assert store.name == "Untitled Workflow"
        assert store.workflow_id == "wf-sample"
        assert store.save_status == SaveStatus.SAVED
        assert store.state == DocumentState.READY
        assert store.counters == {"input": 1, "transform": 1, "output": 1}

    def test_constructor_opens_workflow(self, sample_workflow):
        store = WorkflowGraphStore(workflow=sample_workflow)

        assert [n.id for n in store.nodes] == ["input_0", "transform_0", "output_0"]

    def test_snapshot_is_deep_copy(self, store):
        node = store.add_node("text")
        snapshot = store.snapshot()

        store.update_node_data(node.id, {"text": "changed"})

        assert snapshot.nodes[0].params == {}

    def test_subscribe_receives_snapshots(self, store):
        received = []
        unsubscribe = store.subscribe(received.append)

        store.add_node("input")
        store.add_node("text")
        unsubscribe()
        store.add_node("output")

        assert [len(w.nodes) for w in received] == [1, 2]
        assert all(isinstance(w, Workflow) for w in received)

    def test_preview_param(self, store):
        a = store.add_node("input")
        b = store.add_node("openai")
        connect(store, a.id, b.id)
        store.update_node_data(b.id, {"prompt": "Summarize: {{ input_0.text }}"})

        preview = store.preview_param(b.id, "prompt", {"input_0": {"text": "hello"}})
        empty = store.preview_param(b.id, "prompt")

        assert preview.text == "Summarize: hello"
        assert empty.text == "Summarize: "
        assert len(empty.warnings) == 1
        with pytest.raises(KeyError):
            store.preview_param("ghost", "prompt")


class FailingRepository:
    async def save(self, workflow):
        raise RuntimeError("disk full")

    async def load(self, workflow_id):
        raise PersistenceError("not found", workflow_id)


class SlowRepository(InMemoryWorkflowRepository):
    """Save that waits for the test to release it."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def save(self, workflow):
        self.started.set()
        await self.release.wait()
        await super().save(workflow)


class TestPersistence:
    """Test save/load state machine."""

    async def test_save_assigns_id_and_marks_saved(self, store):
        repository = InMemoryWorkflowRepository()
        store.add_node("input")

        workflow_id = await store.save(repository)

        assert workflow_id == store.workflow_id
        assert workflow_id in repository
        assert store.save_status == SaveStatus.SAVED

    async def test_save_load_round_trip(self, store):
        repository = InMemoryWorkflowRepository()
        a = store.add_node("input")
        b = store.add_node("openai")
        connect(store, a.id, b.id)
        store.update_node_data(b.id, {"prompt": "{{ input_0.text }}"})
        store.set_workflow_name("Round Trip")
        workflow_id = await store.save(repository)
        saved = store.snapshot()

        other = WorkflowGraphStore()
        loaded = await other.load(repository, workflow_id)

        assert loaded.same_content(saved)
        assert other.state == DocumentState.READY
        assert other.save_status == SaveStatus.SAVED
        assert other.add_node("openai").id == "openai_1"

    async def test_save_status_transitions(self, store):
        repository = InMemoryWorkflowRepository()
        statuses = []
        store.subscribe(lambda w: statuses.append(w.save_status))
        store.add_node("input")

        await store.save(repository)

        assert statuses == [SaveStatus.UNSAVED, SaveStatus.SAVING, SaveStatus.SAVED]

    async def test_edit_during_save_stays_unsaved(self, store):
        repository = SlowRepository()
        node = store.add_node("input")

        task = asyncio.create_task(store.save(repository))
        await repository.started.wait()
        store.update_node_data(node.id, {"value": "edited"})
        repository.release.set()
        await task

        assert store.save_status == SaveStatus.UNSAVED
        stored = await repository.load(store.workflow_id)
        assert stored.nodes[0].params == {}

    async def test_failed_save_raises_and_stays_unsaved(self, store):
        store.add_node("input")

        with pytest.raises(PersistenceError) as exc_info:
            await store.save(FailingRepository())

        assert "disk full" in str(exc_info.value)
        assert exc_info.value.workflow_id is not None
        assert store.save_status == SaveStatus.UNSAVED

    async def test_failed_first_save_leaves_workflow_new(self, store):
        """The ID generated for a first save is dropped when the save fails."""
        store.add_node("input")

        with pytest.raises(PersistenceError):
            await store.save(FailingRepository())

        assert store.workflow_id is None

    async def test_failed_save_keeps_existing_id(self, store):
        store.set_workflow_id("wf-existing")
        store.add_node("input")

        with pytest.raises(PersistenceError):
            await store.save(FailingRepository())

        assert store.workflow_id == "wf-existing"

    async def test_failed_load_restores_previous_state(self, store):
        store.add_node("input")
        before = store.snapshot()
        states = []
        store.subscribe(lambda w: states.append(store.state))

        with pytest.raises(PersistenceError):
            await store.load(FailingRepository(), "wf-missing")

        assert states == [DocumentState.LOADING, DocumentState.READY]
        assert store.state == DocumentState.READY
        assert store.snapshot().same_content(before)

    async def test_failed_load_on_fresh_store(self, store):
        with pytest.raises(PersistenceError):
            await store.load(InMemoryWorkflowRepository(), "nope")

        assert store.state == DocumentState.UNINITIALIZED
