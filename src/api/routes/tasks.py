"""Task submission and lookup routes.

Endpoints:
- POST /api/v1/tasks                  Submit a task (returns its id immediately)
- GET  /api/v1/tasks                  List tasks, newest first
- GET  /api/v1/tasks/{id}             Get one task
- POST /api/v1/tasks/{id}/dispatch    Republish a task stuck in pending
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.deps import get_producer
from src.pipeline.errors import DeliveryError, TaskNotFoundError, TaskStateError
from src.pipeline.producer import TaskProducer
from src.pipeline.store import TaskRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


# -- Schemas ------------------------------------------------------------------


class TaskCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=100)
    payload: dict[str, Any]


class TaskAccepted(BaseModel):
    id: str
    status: str = "pending"


class TaskResponse(BaseModel):
    id: str
    type: str
    status: str
    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class TaskList(BaseModel):
    items: list[TaskResponse]
    total: int


def _to_response(task: TaskRecord) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        type=task.type,
        status=task.status.value,
        payload=task.payload,
        result=task.result,
        error=task.error,
        created_at=task.created_at,
        updated_at=task.updated_at,
        completed_at=task.completed_at,
    )


def _delivery_failed(task_id: str | None) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Task was recorded but could not be queued; retry via the dispatch endpoint",
            "task_id": task_id,
        },
    )


# -- Routes -------------------------------------------------------------------


@router.post("", response_model=TaskAccepted, status_code=status.HTTP_202_ACCEPTED)
async def submit_task(
    body: TaskCreate,
    producer: TaskProducer = Depends(get_producer),
) -> Any:
    """Record a task and queue it for asynchronous processing."""
    try:
        task_id = await producer.submit(body.type, body.payload)
    except DeliveryError as exc:
        return _delivery_failed(exc.task_id)
    return TaskAccepted(id=task_id)


@router.get("", response_model=TaskList)
async def list_tasks(producer: TaskProducer = Depends(get_producer)) -> TaskList:
    tasks = await producer.list_tasks()
    return TaskList(items=[_to_response(t) for t in tasks], total=len(tasks))


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: UUID, producer: TaskProducer = Depends(get_producer)) -> TaskResponse:
    task = await producer.get_task(str(task_id))
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task {task_id} not found")
    return _to_response(task)


@router.post("/{task_id}/dispatch", response_model=TaskAccepted, status_code=status.HTTP_202_ACCEPTED)
async def redispatch_task(task_id: UUID, producer: TaskProducer = Depends(get_producer)) -> Any:
    """Republish a task whose original dispatch failed."""
    try:
        task = await producer.redispatch(str(task_id))
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except TaskStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DeliveryError:
        return _delivery_failed(str(task_id))
    return TaskAccepted(id=task.id, status=task.status.value)
