"""Simple (non-compounding) interest over a number of days."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from src.pipeline.errors import HandlerError
from src.pipeline.handlers.base import TaskHandler

DAYS_PER_YEAR = 365


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CalculateInterestHandler(TaskHandler):
    task_type = "calculate-interest"
    aliases = ("calculate_interest",)

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any]:
        principal = payload.get("principal")
        annual_rate = payload.get("annualRate")
        days = payload.get("days")

        if not principal or annual_rate is None or not days:
            raise HandlerError("Missing required fields: principal, annualRate, days")
        if not (_is_number(principal) and _is_number(annual_rate) and _is_number(days)):
            raise HandlerError("principal, annualRate and days must be numbers")
        if principal <= 0 or days <= 0:
            raise HandlerError("Principal and days must be positive numbers")

        interest = principal * (annual_rate / DAYS_PER_YEAR) * days
        return {
            "principal": principal,
            "annualRate": annual_rate,
            "days": days,
            "interest": round(interest, 2),
            "totalAmount": round(principal + interest, 2),
            "timestamp": datetime.now(UTC).isoformat(),
        }
