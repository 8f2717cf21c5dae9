"""Task store: the durable keyed record of every submitted task.

The pipeline only needs create / find-by-id / update-by-id / find-all, so
that is the whole interface. ``SqlTaskStore`` is the production backend;
``InMemoryTaskStore`` serves local runs and tests.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import Settings
from src.core.models import Task, TaskStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"status", "result", "error", "completed_at"})


class TaskRecord(BaseModel):
    """Store-agnostic view of one task."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    status: TaskStatus = TaskStatus.PENDING
    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)

    @classmethod
    def new(cls, task_id: str, task_type: str, payload: dict[str, Any]) -> TaskRecord:
        """A freshly submitted, ``pending`` task."""
        now = datetime.now(UTC)
        return cls(id=task_id, type=task_type, payload=payload, created_at=now, updated_at=now)


class TaskStore(Protocol):
    async def create(self, task: TaskRecord) -> TaskRecord: ...

    async def find_by_id(self, task_id: str) -> TaskRecord | None: ...

    async def update_by_id(self, task_id: str, fields: dict[str, Any]) -> TaskRecord | None: ...

    async def find_all(self) -> list[TaskRecord]: ...


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")


def _parse_id(task_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(task_id))
    except ValueError:
        return None


class SqlTaskStore:
    """Task store backed by the ``tasks`` table.

    Every operation runs in its own session and commits before returning,
    so a successful return means the write is durable.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, task: TaskRecord) -> TaskRecord:
        row = Task(
            id=uuid.UUID(task.id),
            type=task.type,
            status=task.status,
            payload=task.payload,
            result=task.result,
            error=task.error,
            created_at=task.created_at,
            updated_at=task.updated_at,
            completed_at=task.completed_at,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return TaskRecord.model_validate(row)

    async def find_by_id(self, task_id: str) -> TaskRecord | None:
        uid = _parse_id(task_id)
        if uid is None:
            return None
        async with self._session_factory() as session:
            row = await session.get(Task, uid)
            return TaskRecord.model_validate(row) if row is not None else None

    async def update_by_id(self, task_id: str, fields: dict[str, Any]) -> TaskRecord | None:
        _check_fields(fields)
        uid = _parse_id(task_id)
        if uid is None:
            return None
        async with self._session_factory() as session:
            row = await session.get(Task, uid)
            if row is None:
                return None
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = datetime.now(UTC)
            await session.commit()
            return TaskRecord.model_validate(row)

    async def find_all(self) -> list[TaskRecord]:
        async with self._session_factory() as session:
            result = await session.execute(select(Task).order_by(Task.created_at.desc(), Task.id.desc()))
            return [TaskRecord.model_validate(row) for row in result.scalars().all()]


class InMemoryTaskStore:
    """Process-local task store for development and tests."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}

    async def create(self, task: TaskRecord) -> TaskRecord:
        if task.id in self._tasks:
            raise ValueError(f"Task {task.id} already exists")
        self._tasks[task.id] = task.model_copy(deep=True)
        return task.model_copy(deep=True)

    async def find_by_id(self, task_id: str) -> TaskRecord | None:
        current = self._tasks.get(str(task_id))
        return current.model_copy(deep=True) if current is not None else None

    async def update_by_id(self, task_id: str, fields: dict[str, Any]) -> TaskRecord | None:
        _check_fields(fields)
        current = self._tasks.get(str(task_id))
        if current is None:
            return None
        updated = current.model_copy(update={**fields, "updated_at": datetime.now(UTC)}, deep=True)
        self._tasks[current.id] = updated
        return updated.model_copy(deep=True)

    async def find_all(self) -> list[TaskRecord]:
        ordered = sorted(self._tasks.values(), key=lambda t: (t.created_at, t.id), reverse=True)
        return [t.model_copy(deep=True) for t in ordered]


def create_task_store(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> TaskStore:
    """Build the task store selected by ``settings.task_store_backend``."""
    if settings.task_store_backend == "memory":
        logger.warning("Using the in-memory task store; tasks are lost on restart")
        return InMemoryTaskStore()
    if session_factory is None:
        raise ValueError("A session factory is required for the postgres task store")
    return SqlTaskStore(session_factory)
