"""Workflow repositories: the persistence collaborators of the graph store."""
import asyncio
import json
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from flowgraph.config import get_settings
from flowgraph.errors import PersistenceError
from flowgraph.models import Workflow, parse_workflow
from flowgraph.observability import get_logger, with_run_context

logger = get_logger(__name__)


@runtime_checkable
class WorkflowRepository(Protocol):
    """Async save/load of whole workflow documents."""

    async def save(self, workflow: Workflow) -> None:
        """
        Persist a workflow document.

        Raises:
            PersistenceError: If the backend fails
        """
        ...

    async def load(self, workflow_id: str) -> Workflow:
        """
        Load a workflow document.

        Raises:
            PersistenceError: If the workflow is missing or the backend fails
        """
        ...


def _require_id(workflow: Workflow) -> str:
    if not workflow.id:
        raise PersistenceError("Workflow has no ID; assign one before saving")
    return workflow.id


class InMemoryWorkflowRepository:
    """Repository keeping serialized documents in a dict."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    async def save(self, workflow: Workflow) -> None:
        workflow_id = _require_id(workflow)
        self._documents[workflow_id] = workflow.to_json()

    async def load(self, workflow_id: str) -> Workflow:
        document = self._documents.get(workflow_id)
        if document is None:
            raise PersistenceError(f"Workflow not found: {workflow_id}", workflow_id)
        return Workflow.model_validate_json(document)

    async def delete(self, workflow_id: str) -> bool:
        return self._documents.pop(workflow_id, None) is not None

    def list_ids(self) -> list[str]:
        return list(self._documents)

    def __contains__(self, workflow_id: str) -> bool:
        return workflow_id in self._documents


class JsonFileWorkflowRepository:
    """
    One JSON file per workflow under ``storage_dir``.

    Files hold the camelCase document with nodes and edges in insertion
    order. Blocking file I/O runs in a worker thread.
    """

    def __init__(self, storage_dir: str | Path | None = None):
        """
        Initialize repository.

        Args:
            storage_dir: Directory for workflow files (settings default)
        """
        self._dir = Path(storage_dir or get_settings().storage_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFileWorkflowRepository initialized at {self._dir}")

    @property
    def storage_dir(self) -> Path:
        return self._dir

    async def save(self, workflow: Workflow) -> None:
        workflow_id = _require_id(workflow)
        path = self._path_for(workflow_id)
        try:
            await asyncio.to_thread(path.write_text, workflow.to_json(), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}", workflow_id) from e
        logger.info(
            f"Workflow saved: {workflow.name}",
            extra=with_run_context(workflow_id=workflow_id, path=str(path)),
        )

    async def load(self, workflow_id: str) -> Workflow:
        path = self._path_for(workflow_id)
        if not path.exists():
            raise PersistenceError(f"Workflow not found: {workflow_id}", workflow_id)
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return parse_workflow(json.loads(text))
        except (OSError, ValueError, ValidationError) as e:
            raise PersistenceError(f"Failed to load workflow {workflow_id}: {e}", workflow_id) from e

    async def delete(self, workflow_id: str) -> bool:
        path = self._path_for(workflow_id)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to delete {path}: {e}", workflow_id) from e
        logger.info("Workflow deleted", extra=with_run_context(workflow_id=workflow_id))
        return True

    def list_ids(self) -> list[str]:
        return [path.stem for path in sorted(self._dir.glob("*.json"))]

    def _path_for(self, workflow_id: str) -> Path:
        # IDs must already be filesystem-safe so two IDs never share a file
        safe_id = "".join(c for c in workflow_id if c.isalnum() or c in "-_")
        if not safe_id or safe_id != workflow_id:
            raise PersistenceError(f"Invalid workflow ID: {workflow_id!r}", workflow_id)
        return self._dir / f"{safe_id}.json"
