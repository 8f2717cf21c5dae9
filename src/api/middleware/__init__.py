"""FastAPI middleware for TaskRelay."""

from src.api.middleware.security import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
]
