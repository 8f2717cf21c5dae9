"""Task handler base class and the type -> handler registry.

``TaskHandler`` is the abstract base class for all task-type logic.
Subclasses set ``task_type`` (plus optional ``aliases``) and implement
``execute(payload)``. A handler either returns a result dict or raises
``HandlerError`` with a message fit for the task's ``error`` field.

Example subclass::

    class ReverseHandler(TaskHandler):
        task_type = "reverse-text"

        async def execute(self, payload: dict[str, Any]) -> dict[str, Any]:
            text = payload.get("text")
            if not isinstance(text, str):
                raise HandlerError("Missing required field: text")
            return {"reversed": text[::-1]}
"""

from __future__ import annotations

import abc
import logging
from typing import Any

from src.pipeline.errors import UnknownTaskType

logger = logging.getLogger(__name__)


class TaskHandler(abc.ABC):
    """Abstract base class for task-type handlers.

    Attributes:
        task_type: The ``type`` tag this handler serves.
        aliases: Further tags routed to the same handler.
    """

    task_type: str = ""
    aliases: tuple[str, ...] = ()

    @abc.abstractmethod
    async def execute(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Run the task and return its result.

        Raises:
            HandlerError: The payload cannot be processed.
        """


class HandlerRegistry:
    """Fixed, extensible table of handlers selected by exact ``type`` match."""

    def __init__(self) -> None:
        self._handlers: dict[str, TaskHandler] = {}

    def register(self, handler: TaskHandler) -> None:
        """Register ``handler`` under its ``task_type`` and every alias.

        Raises:
            ValueError: If ``task_type`` is empty.
        """
        if not handler.task_type:
            raise ValueError("TaskHandler.task_type must be set")
        for tag in (handler.task_type, *handler.aliases):
            if tag in self._handlers:
                logger.warning("Replacing handler for task type %s", tag)
            self._handlers[tag] = handler

    def get(self, task_type: str) -> TaskHandler | None:
        return self._handlers.get(task_type)

    @property
    def task_types(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, task_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run the handler registered for ``task_type``.

        Raises:
            UnknownTaskType: No handler matches ``task_type``.
            HandlerError: The handler rejected the payload.
        """
        handler = self._handlers.get(task_type)
        if handler is None:
            raise UnknownTaskType(task_type)
        return await handler.execute(payload)
