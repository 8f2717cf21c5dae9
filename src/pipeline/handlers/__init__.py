"""Task-type handlers and the registry the processor dispatches through."""

from src.pipeline.handlers.base import HandlerRegistry, TaskHandler
from src.pipeline.handlers.currency import ConvertCurrencyHandler
from src.pipeline.handlers.interest import CalculateInterestHandler


def default_registry() -> HandlerRegistry:
    """Registry holding every built-in handler."""
    registry = HandlerRegistry()
    registry.register(ConvertCurrencyHandler())
    registry.register(CalculateInterestHandler())
    return registry


__all__ = [
    "CalculateInterestHandler",
    "ConvertCurrencyHandler",
    "HandlerRegistry",
    "TaskHandler",
    "default_registry",
]
