"""Task producer: records a task and publishes it to the task queue.

The store write happens before the publish, so anyone who later looks a
task id up finds at least its ``pending`` record. If the publish fails the
record stays ``pending``; ``redispatch`` republishes it.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from src.core.models import TaskStatus
from src.pipeline.errors import DeliveryError, TaskNotFoundError, TaskStateError
from src.pipeline.gateway import QueueGateway
from src.pipeline.messages import TaskMessage
from src.pipeline.provisioning import PipelineQueues
from src.pipeline.store import TaskRecord, TaskStore

logger = logging.getLogger(__name__)


class TaskProducer:
    """Entry point for submitting and querying tasks.

    Args:
        store: Task store holding the records.
        gateway: Queue gateway used to publish task messages.
        queues: Provisioned queue addresses.
    """

    def __init__(self, store: TaskStore, gateway: QueueGateway, queues: PipelineQueues) -> None:
        self._store = store
        self._gateway = gateway
        self._queues = queues

    async def submit(self, task_type: str, payload: dict[str, Any]) -> str:
        """Persist a ``pending`` task and publish it for processing.

        Returns:
            The new task id.

        Raises:
            DeliveryError: The task was stored but could not be published.
        """
        task_id = str(uuid.uuid4())
        await self._store.create(TaskRecord.new(task_id, task_type, payload))
        await self._publish(TaskMessage(task_id=task_id, type=task_type, payload=payload))
        logger.info("Submitted task %s (type=%s)", task_id, task_type)
        return task_id

    async def get_task(self, task_id: str) -> TaskRecord | None:
        return await self._store.find_by_id(task_id)

    async def list_tasks(self) -> list[TaskRecord]:
        """All tasks, newest first."""
        return await self._store.find_all()

    async def redispatch(self, task_id: str) -> TaskRecord:
        """Publish the task message again for a task still ``pending``.

        Raises:
            TaskNotFoundError: Unknown task id.
            TaskStateError: The task has already been picked up.
            DeliveryError: The message could not be published.
        """
        task = await self._store.find_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status != TaskStatus.PENDING:
            raise TaskStateError(f"Task {task_id} is {task.status}; only pending tasks can be dispatched")

        await self._publish(TaskMessage(task_id=task.id, type=task.type, payload=task.payload))
        logger.info("Redispatched task %s (type=%s)", task.id, task.type)
        return task

    async def _publish(self, message: TaskMessage) -> None:
        try:
            await self._gateway.send(self._queues.task_queue_url, message)
        except DeliveryError as exc:
            logger.error("Task %s stored but not published; it stays pending until redispatched", message.task_id)
            raise DeliveryError(str(exc), exc.queue_url, task_id=message.task_id) from exc
