"""Wire messages carried by the task and results queues.

Both travel as camelCase JSON objects::

    task queue:    {"taskId": "...", "type": "...", "payload": {...}}
    results queue: {"taskId": "...", "type": "...", "result": {...} | null,
                    "status": "processing" | "completed" | "failed",
                    "error": "..."}   # error only when set
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ResultStatus = Literal["processing", "completed", "failed"]


class WireMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys, ready for JSON encoding."""
        return self.model_dump(mode="json", by_alias=True)


class TaskMessage(WireMessage):
    """Unit of work published once per task by the producer."""

    task_id: str = Field(alias="taskId", min_length=1)
    type: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class ResultMessage(WireMessage):
    """Status report published by a processor for one task."""

    task_id: str = Field(alias="taskId", min_length=1)
    type: str
    result: dict[str, Any] | None = None
    status: ResultStatus
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        data = super().to_wire()
        if data.get("error") is None:
            data.pop("error", None)
        return data

    @classmethod
    def processing(cls, message: TaskMessage) -> ResultMessage:
        return cls(task_id=message.task_id, type=message.type, result=None, status="processing")

    @classmethod
    def completed(cls, message: TaskMessage, result: dict[str, Any]) -> ResultMessage:
        return cls(task_id=message.task_id, type=message.type, result=result, status="completed")

    @classmethod
    def failed(cls, message: TaskMessage, error: str) -> ResultMessage:
        return cls(task_id=message.task_id, type=message.type, result=None, status="failed", error=error)
