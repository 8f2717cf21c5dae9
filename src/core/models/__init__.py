"""SQLAlchemy models for TaskRelay.

Importing this package registers every model with ``Base.metadata``
(Alembic relies on that for autogenerate).
"""

from src.core.models.task import Task, TaskStatus

__all__ = [
    "Task",
    "TaskStatus",
]
