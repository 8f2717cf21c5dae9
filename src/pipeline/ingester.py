"""Result ingester: applies result messages to the task store.

A result message is deleted only after the store accepted the update, so a
failing store simply means the message is redelivered and applied again.
Applying the same message twice yields the same record, and a message that
would move a task backwards along ``pending → processing → completed|failed``
is dropped, which keeps duplicates and out-of-order redeliveries harmless.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from src.core.models import TaskStatus
from src.pipeline.errors import AckError
from src.pipeline.gateway import QueueGateway, ReceivedMessage
from src.pipeline.messages import ResultMessage
from src.pipeline.polling import PollingLoop
from src.pipeline.provisioning import PipelineQueues
from src.pipeline.store import TaskRecord, TaskStore

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Processing failed"


def plan_update(task: TaskRecord, message: ResultMessage) -> dict[str, Any] | None:
    """Fields to write for ``message``, or None when it changes nothing.

    ``completed_at`` is only ever set when it is still empty.
    """
    incoming = TaskStatus(message.status)
    current = task.status

    if incoming.rank < current.rank:
        return None
    if current.is_terminal and incoming != current:
        return None

    if incoming == TaskStatus.PROCESSING:
        if current == TaskStatus.PROCESSING:
            return None
        return {"status": TaskStatus.PROCESSING}

    fields: dict[str, Any] = {"status": incoming}
    if incoming == TaskStatus.COMPLETED:
        fields["result"] = message.result
        fields["error"] = None
    else:
        fields["error"] = message.error or DEFAULT_FAILURE_MESSAGE
        fields["result"] = None
    if task.completed_at is None:
        fields["completed_at"] = datetime.now(UTC)
    return fields


class ResultIngester:
    """Worker that drains the results queue into the task store.

    Args:
        gateway: Queue gateway used for every queue operation.
        queues: Provisioned queue addresses.
        store: Task store receiving the updates.
        batch_size: Messages leased per poll cycle.
        poll_interval_seconds: Delay between poll cycles in ``run``.
    """

    def __init__(
        self,
        gateway: QueueGateway,
        queues: PipelineQueues,
        store: TaskStore,
        *,
        batch_size: int = 10,
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self._gateway = gateway
        self._queues = queues
        self._store = store
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds

    async def poll_once(self) -> int:
        """Lease a batch from the results queue and apply it in receipt order.

        Returns:
            Number of messages received (0 when the queue is idle).
        """
        messages = await self._gateway.receive(self._queues.results_queue_url, self.batch_size)
        if not messages:
            return 0

        for received in messages:
            try:
                await self.handle(received)
            except Exception:  # Intentionally broad: the lease expiry retries this message
                logger.exception(
                    "Error applying result message %s (receive %d); it will be redelivered",
                    received.message_id,
                    received.receive_count,
                )
        return len(messages)

    async def handle(self, received: ReceivedMessage) -> None:
        """Apply one result message and acknowledge it.

        Raises:
            Exception: Whatever the store raised. The message stays undeleted.
        """
        try:
            message = ResultMessage.model_validate(received.body)
        except ValidationError:
            logger.exception("Malformed result message %s; leaving it for redrive", received.message_id)
            return

        task = await self._store.find_by_id(message.task_id)
        if task is None:
            logger.info("Orphan result for unknown task %s (%s); discarding", message.task_id, message.status)
        else:
            fields = plan_update(task, message)
            if fields is None:
                logger.debug(
                    "Ignoring %s result for task %s already at %s",
                    message.status,
                    message.task_id,
                    task.status,
                )
            else:
                await self._store.update_by_id(message.task_id, fields)
                logger.info("Task %s updated with status: %s", message.task_id, message.status)

        await self._acknowledge(received)

    async def _acknowledge(self, received: ReceivedMessage) -> None:
        try:
            await self._gateway.delete(self._queues.results_queue_url, received.lease_handle)
        except AckError as exc:
            logger.warning("Could not delete result message %s: %s", received.message_id, exc)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Poll the results queue until shutdown."""
        loop = PollingLoop("Result ingester", self.poll_once, self.poll_interval_seconds)
        await loop.run(shutdown_event)
