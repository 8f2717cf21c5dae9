"""Task processor: consumes the task queue and reports to the results queue.

Per received task message::

    received → publish "processing" → dispatch(type, payload)
        success → publish "completed" → delete task message
        failure → publish "failed"    → delete task message

The task message is deleted only after the terminal result has been
published. If anything before the delete fails (or the process dies), the
lease expires and the queue redelivers the message, up to its maximum
receive count, after which the queue moves it to the dead-letter queue.
Redelivery restarts the whole sequence, so every step is safe to repeat.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from src.pipeline.errors import AckError, HandlerError
from src.pipeline.gateway import QueueGateway, ReceivedMessage
from src.pipeline.handlers import HandlerRegistry
from src.pipeline.messages import ResultMessage, TaskMessage
from src.pipeline.polling import PollingLoop
from src.pipeline.provisioning import PipelineQueues

logger = logging.getLogger(__name__)


class TaskProcessor:
    """Worker that runs task handlers for messages on the task queue.

    Args:
        gateway: Queue gateway used for every queue operation.
        queues: Provisioned queue addresses.
        registry: Handlers keyed by task type.
        batch_size: Messages leased per poll cycle.
        poll_interval_seconds: Delay between poll cycles in ``run``.
    """

    def __init__(
        self,
        gateway: QueueGateway,
        queues: PipelineQueues,
        registry: HandlerRegistry,
        *,
        batch_size: int = 1,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self._gateway = gateway
        self._queues = queues
        self._registry = registry
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds

    async def poll_once(self) -> int:
        """Lease a batch from the task queue and handle it in receipt order.

        Returns:
            Number of messages received (0 when the queue is idle).
        """
        messages = await self._gateway.receive(self._queues.task_queue_url, self.batch_size)
        if not messages:
            return 0

        for received in messages:
            try:
                await self.handle(received)
            except Exception:  # Intentionally broad: the lease expiry retries this message
                logger.exception(
                    "Error processing message %s (receive %d); it will be redelivered",
                    received.message_id,
                    received.receive_count,
                )
        return len(messages)

    async def handle(self, received: ReceivedMessage) -> None:
        """Process one task message end to end.

        Raises:
            DeliveryError: A result could not be published. The task message
                is left undeleted so it is redelivered.
        """
        try:
            message = TaskMessage.model_validate(received.body)
        except ValidationError:
            logger.exception("Malformed task message %s; leaving it for redrive", received.message_id)
            return

        logger.debug("Processing task %s of type %s", message.task_id, message.type)
        await self._publish(ResultMessage.processing(message))

        outcome = await self._execute(message)
        await self._publish(outcome)

        try:
            await self._gateway.delete(self._queues.task_queue_url, received.lease_handle)
        except AckError as exc:
            logger.warning("Could not delete task message for %s: %s", message.task_id, exc)

        logger.info("Task %s finished with status: %s", message.task_id, outcome.status)

    async def _execute(self, message: TaskMessage) -> ResultMessage:
        try:
            result = await self._registry.dispatch(message.type, message.payload)
        except HandlerError as exc:
            logger.info("Task %s failed: %s", message.task_id, exc)
            return ResultMessage.failed(message, str(exc))
        except Exception as exc:  # Intentionally broad: handler faults become failed results
            logger.exception("Task %s handler raised unexpectedly", message.task_id)
            return ResultMessage.failed(message, str(exc) or "Processing failed")
        return ResultMessage.completed(message, result)

    async def _publish(self, result: ResultMessage) -> None:
        await self._gateway.send(self._queues.results_queue_url, result)
        logger.debug("Result message sent to results queue: %s (%s)", result.task_id, result.status)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Poll the task queue until shutdown."""
        loop = PollingLoop("Task processor", self.poll_once, self.poll_interval_seconds)
        await loop.run(shutdown_event)
