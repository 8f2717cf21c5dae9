"""Startup-time queue provisioning.

Queue addresses are resolved once, before any component starts, and handed
to the producer, processor and ingester as an immutable value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.core.config import Settings
from src.pipeline.errors import ProvisioningError
from src.pipeline.gateway import QueueGateway, dead_letter_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineQueues:
    """Addresses of every queue the pipeline uses."""

    task_queue_url: str
    results_queue_url: str
    task_dead_letter_url: str
    results_dead_letter_url: str

    def all_urls(self) -> list[str]:
        return [
            self.task_queue_url,
            self.results_queue_url,
            self.task_dead_letter_url,
            self.results_dead_letter_url,
        ]


def create_gateway(redis: object, settings: Settings) -> QueueGateway:
    """Build a gateway configured with the queue attributes from settings."""
    return QueueGateway(
        redis,
        visibility_timeout=settings.queue_visibility_timeout,
        message_retention_period=settings.queue_message_retention_period,
    )


async def provision_queues(gateway: QueueGateway, settings: Settings) -> PipelineQueues:
    """Ensure the task and results queues (and their dead-letter queues) exist.

    Raises:
        ProvisioningError: If a queue name is missing or a queue cannot be
            created. Callers treat this as fatal.
    """
    task_name = settings.task_queue_name
    results_name = settings.results_queue_name
    if not task_name or not results_name:
        raise ProvisioningError("Task and results queue names must be configured")

    task_url = await gateway.ensure_queue(task_name, source_name=task_name)
    results_url = await gateway.ensure_queue(results_name, source_name=results_name)
    # Normally created above; queues provisioned before redrive existed lack them.
    task_dead_letter_url = await gateway.ensure_queue(dead_letter_name(task_name), is_dead_letter=True)
    results_dead_letter_url = await gateway.ensure_queue(dead_letter_name(results_name), is_dead_letter=True)

    queues = PipelineQueues(
        task_queue_url=task_url,
        results_queue_url=results_url,
        task_dead_letter_url=task_dead_letter_url,
        results_dead_letter_url=results_dead_letter_url,
    )
    logger.info("Queues provisioned: task=%s results=%s", task_url, results_url)
    return queues
