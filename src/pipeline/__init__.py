"""Asynchronous task pipeline.

Producer → task queue → Processor → results queue → Result Ingester → Task Store.
Queues are Redis Streams with SQS-style leases and dead-letter redrive.
"""

from src.pipeline.gateway import QueueGateway, ReceivedMessage
from src.pipeline.ingester import ResultIngester
from src.pipeline.processor import TaskProcessor
from src.pipeline.producer import TaskProducer
from src.pipeline.provisioning import PipelineQueues, provision_queues

__all__ = [
    "PipelineQueues",
    "QueueGateway",
    "ReceivedMessage",
    "ResultIngester",
    "TaskProcessor",
    "TaskProducer",
    "provision_queues",
]
