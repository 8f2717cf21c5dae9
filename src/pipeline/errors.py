"""Exception hierarchy for the task pipeline.

Queue failures carry the queue address they happened on; handler failures
carry the human-readable message that ends up in a ``failed`` result.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class QueueError(PipelineError):
    """A queue operation failed at the transport level."""

    def __init__(self, message: str, queue_url: str | None = None) -> None:
        super().__init__(message)
        self.queue_url = queue_url


class ProvisioningError(QueueError):
    """A queue could not be looked up or created. Fatal to startup."""


class DeliveryError(QueueError):
    """A message could not be published.

    ``task_id`` is set when the message belonged to a task that is already
    recorded in the store.
    """

    def __init__(self, message: str, queue_url: str | None = None, task_id: str | None = None) -> None:
        super().__init__(message, queue_url)
        self.task_id = task_id


class AckError(QueueError):
    """A message could not be deleted, usually because its lease went stale.

    Never fatal: the message is redelivered (or dead-lettered) and handled
    again, which every consumer tolerates.
    """


class HandlerError(PipelineError):
    """Task-type logic failed; becomes a ``failed`` result, never propagates."""


class UnknownTaskType(HandlerError):
    """No handler is registered for the requested task type."""

    def __init__(self, task_type: str) -> None:
        super().__init__(f"Unknown task type: {task_type}")
        self.task_type = task_type


class TaskNotFoundError(PipelineError):
    """The task id does not exist in the task store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskStateError(PipelineError):
    """The requested operation is not valid for the task's current status."""
