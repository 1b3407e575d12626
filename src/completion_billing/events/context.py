"""Event context helpers: money formatting, JSON-safe payloads, rendering."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping

# Context keys holding currency amounts; rendered with a currency symbol
MONEY_FIELDS = frozenset(
    {
        "amount",
        "upfrontAmount",
        "remainingBudget",
        "finalAmount",
        "totalBudget",
    }
)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def format_money(amount: Decimal | int | float | str, currency: str = "USD") -> str:
    """Format an amount for a message: ``$2,933`` or ``$2,933.50``."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    if value == value.to_integral_value():
        body = f"{value:,.0f}"
    else:
        body = f"{value:,.2f}"
    symbol = CURRENCY_SYMBOLS.get(currency)
    return f"{symbol}{body}" if symbol else f"{body} {currency}"


def json_safe(context: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a context dict into something the JSON column accepts."""
    safe: dict[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, Decimal):
            safe[key] = str(value)
        elif isinstance(value, (datetime, date)):
            safe[key] = value.isoformat()
        else:
            safe[key] = value
    return safe


def render(template: str, context: Mapping[str, Any], currency: str = "USD") -> str:
    """Fill a message template, formatting money fields.

    Raises KeyError when the template needs a field the context lacks.
    """
    fields = {
        key: format_money(value, currency) if key in MONEY_FIELDS and value is not None else value
        for key, value in context.items()
    }
    return template.format_map(fields)
