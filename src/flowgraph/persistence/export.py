"""Downloadable workflow export documents."""
import json
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from flowgraph.config import get_settings
from flowgraph.errors import PersistenceError
from flowgraph.models import Workflow, WorkflowExport
from flowgraph.observability import get_logger

logger = get_logger(__name__)


def export_filename(name: str) -> str:
    """``My Flow`` -> ``my-flow.json``."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return f"{slug or 'workflow'}.json"


def export_workflow(workflow: Workflow) -> WorkflowExport:
    """Build the export document for ``workflow``."""
    return WorkflowExport(
        nodes=[node.model_copy(deep=True) for node in workflow.nodes],
        edges=[edge.model_copy(deep=True) for edge in workflow.edges],
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=get_settings().export_version,
    )


def write_export(workflow: Workflow, directory: str | Path) -> Path:
    """
    Write the export document of ``workflow`` into ``directory``.

    Returns:
        Path of the written file, named after the workflow
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(workflow.name)
    document = export_workflow(workflow)
    path.write_text(document.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    logger.info(f"Workflow exported to {path}")
    return path


def read_export(path: str | Path) -> WorkflowExport:
    """
    Read an export document.

    Raises:
        PersistenceError: If the file is missing or not an export document
    """
    path = Path(path)
    try:
        return WorkflowExport.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as e:
        raise PersistenceError(f"Failed to read export {path}: {e}") from e
