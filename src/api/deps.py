"""Shared FastAPI dependencies.

Pipeline components are built once in the lifespan and stored on
``app.state``; these accessors hand them to route handlers.
"""

from __future__ import annotations

from fastapi import Request

from src.pipeline.gateway import QueueGateway
from src.pipeline.producer import TaskProducer
from src.pipeline.provisioning import PipelineQueues


def get_producer(request: Request) -> TaskProducer:
    return request.app.state.producer


def get_queue_gateway(request: Request) -> QueueGateway:
    return request.app.state.queue_gateway


def get_pipeline_queues(request: Request) -> PipelineQueues:
    return request.app.state.pipeline_queues
