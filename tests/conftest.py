"""Pytest configuration and fixtures."""
import os

import pytest

# Set test environment variables
os.environ["FLOWGRAPH_ENV"] = "test"
os.environ["FLOWGRAPH_LOG_LEVEL"] = "WARNING"
os.environ["FLOWGRAPH_REDIS_URL"] = "redis://localhost:6379/1"  # Test DB


@pytest.fixture(autouse=True)
def fresh_settings():
    """Rebuild settings per test so monkeypatched env vars take effect."""
    from flowgraph.config import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def registry():
    """Executor registry with the builtin node types."""
    from flowgraph.executors import create_default_registry

    return create_default_registry()


@pytest.fixture
def store():
    """Empty workflow graph store."""
    from flowgraph.store import WorkflowGraphStore

    return WorkflowGraphStore()


@pytest.fixture
def sample_workflow():
    """input_0 -> transform_0 -> output_0 in the persisted camelCase shape."""
    from flowgraph.models import Workflow

    return Workflow.model_validate({
        "id": "wf-sample",
        "name": "Sample Flow",
        "nodes": [
            {
                "id": "input_0",
                "type": "input",
                "position": {"x": 0, "y": 0},
                "data": {"label": "input", "type": "input", "params": {"value": "hello"}},
            },
            {
                "id": "transform_0",
                "type": "transform",
                "position": {"x": 200, "y": 0},
                "data": {
                    "label": "transform",
                    "type": "transform",
                    "params": {"input": "{{ input_0.text }}", "transformation": "uppercase"},
                },
            },
            {
                "id": "output_0",
                "type": "output",
                "position": {"x": 400, "y": 0},
                "data": {
                    "label": "output",
                    "type": "output",
                    "params": {"value": "Result: {{ transform_0.output }}"},
                },
            },
        ],
        "edges": [
            {"id": "e1", "source": "input_0", "target": "transform_0"},
            {"id": "e2", "source": "transform_0", "target": "output_0"},
        ],
    })


@pytest.fixture
def make_workflow():
    """
    Factory building a workflow from ``{id: type}`` and ``[(source, target)]``.

    ``params`` maps node IDs to their params.
    """
    from flowgraph.models import Workflow

    def build(node_types, edges, params=None, workflow_id="wf-test"):
        params = params or {}
        return Workflow.model_validate({
            "id": workflow_id,
            "name": "Test Flow",
            "nodes": [
                {"id": node_id, "type": node_type, "data": {"params": params.get(node_id, {})}}
                for node_id, node_type in node_types.items()
            ],
            "edges": [
                {"id": f"{source}->{target}", "source": source, "target": target}
                for source, target in edges
            ],
        })

    return build


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo handler changes made by setup_logging()."""
    import logging

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
