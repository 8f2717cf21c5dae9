"""Queue inspection route.

Reports approximate depth of the task and results queues and of their
dead-letter queues without leasing any message.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from src.api.deps import get_pipeline_queues, get_queue_gateway
from src.pipeline.errors import QueueError
from src.pipeline.gateway import QueueGateway
from src.pipeline.provisioning import PipelineQueues

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/queues", tags=["queues"])


class QueueStatsResponse(BaseModel):
    name: str
    url: str
    visible: int
    in_flight: int
    dead_letter_target: str | None = None


class QueueStatsList(BaseModel):
    items: list[QueueStatsResponse]


@router.get("", response_model=QueueStatsList)
async def list_queue_stats(
    gateway: QueueGateway = Depends(get_queue_gateway),
    queues: PipelineQueues = Depends(get_pipeline_queues),
) -> QueueStatsList:
    items: list[QueueStatsResponse] = []
    for url in queues.all_urls():
        try:
            stats = await gateway.stats(url)
        except QueueError as exc:
            logger.warning("Queue stats unavailable for %s: %s", url, exc)
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        items.append(
            QueueStatsResponse(
                name=stats.name,
                url=stats.url,
                visible=stats.visible,
                in_flight=stats.in_flight,
                dead_letter_target=stats.dead_letter_target,
            )
        )
    return QueueStatsList(items=items)
