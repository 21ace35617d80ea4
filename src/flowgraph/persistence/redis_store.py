"""Redis-backed workflow repository."""
import asyncio

import redis
from pydantic import ValidationError

from flowgraph.config import get_settings
from flowgraph.errors import PersistenceError
from flowgraph.models import Workflow
from flowgraph.observability import get_logger, with_run_context

logger = get_logger(__name__)


class RedisWorkflowRepository:
    """Stores each workflow document as JSON under ``workflow:{id}``."""

    def __init__(self, redis_client: redis.Redis | None = None, key_prefix: str | None = None):
        """
        Initialize repository.

        Args:
            redis_client: Optional Redis client (will create one if not provided)
            key_prefix: Key prefix (settings default, ``workflow:``)
        """
        settings = get_settings()
        if redis_client is None:
            self.redis_client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
            )
        else:
            self.redis_client = redis_client

        self._prefix = key_prefix if key_prefix is not None else settings.redis_key_prefix

    def _key(self, workflow_id: str) -> str:
        """Get Redis key for a workflow."""
        return f"{self._prefix}{workflow_id}"

    async def save(self, workflow: Workflow) -> None:
        if not workflow.id:
            raise PersistenceError("Workflow has no ID; assign one before saving")
        try:
            await asyncio.to_thread(self.redis_client.set, self._key(workflow.id), workflow.to_json())
        except redis.RedisError as e:
            raise PersistenceError(f"Redis save failed: {e}", workflow.id) from e

        logger.info(
            "Workflow saved to Redis",
            extra=with_run_context(workflow_id=workflow.id, nodes=len(workflow.nodes)),
        )

    async def load(self, workflow_id: str) -> Workflow:
        try:
            document = await asyncio.to_thread(self.redis_client.get, self._key(workflow_id))
        except redis.RedisError as e:
            raise PersistenceError(f"Redis load failed: {e}", workflow_id) from e

        if document is None:
            raise PersistenceError(f"Workflow not found: {workflow_id}", workflow_id)
        try:
            return Workflow.model_validate_json(document)
        except ValidationError as e:
            raise PersistenceError(f"Stored workflow {workflow_id} is invalid: {e}", workflow_id) from e

    async def delete(self, workflow_id: str) -> bool:
        try:
            removed = await asyncio.to_thread(self.redis_client.delete, self._key(workflow_id))
        except redis.RedisError as e:
            raise PersistenceError(f"Redis delete failed: {e}", workflow_id) from e
        return bool(removed)
