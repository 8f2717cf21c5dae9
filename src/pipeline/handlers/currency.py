"""Currency conversion against a fixed table of mock exchange rates."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from src.pipeline.errors import HandlerError
from src.pipeline.handlers.base import TaskHandler

EXCHANGE_RATES: dict[str, dict[str, float]] = {
    "EUR": {"USD": 1.1, "GBP": 0.85, "EUR": 1.0},
    "USD": {"EUR": 0.91, "GBP": 0.77, "USD": 1.0},
    "GBP": {"EUR": 1.18, "USD": 1.30, "GBP": 1.0},
}


class ConvertCurrencyHandler(TaskHandler):
    task_type = "convert-currency"
    aliases = ("convert_currency",)

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any]:
        amount = payload.get("amount")
        from_currency = payload.get("fromCurrency")
        to_currency = payload.get("toCurrency")

        if not amount or not from_currency or not to_currency:
            raise HandlerError("Missing required fields: amount, fromCurrency, toCurrency")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise HandlerError("amount must be a number")

        rate = EXCHANGE_RATES.get(from_currency, {}).get(to_currency)
        if rate is None:
            raise HandlerError(f"Unsupported currency conversion: {from_currency} to {to_currency}")

        return {
            "originalAmount": amount,
            "fromCurrency": from_currency,
            "toCurrency": to_currency,
            "convertedAmount": round(amount * rate, 2),
            "exchangeRate": rate,
            "timestamp": datetime.now(UTC).isoformat(),
        }
