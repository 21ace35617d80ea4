"""Persistence package."""
from flowgraph.persistence.export import (
    export_filename,
    export_workflow,
    read_export,
    write_export,
)
from flowgraph.persistence.redis_store import RedisWorkflowRepository
from flowgraph.persistence.repository import (
    InMemoryWorkflowRepository,
    JsonFileWorkflowRepository,
    WorkflowRepository,
)

__all__ = [
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "JsonFileWorkflowRepository",
    "RedisWorkflowRepository",
    "export_filename",
    "export_workflow",
    "read_export",
    "write_export",
]
