from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .services.errors import InvalidCheckoutRequestError


# Maximum charge: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

_PLAIN_INT = re.compile(r"-?[0-9]+")


def coerce_amount_cents(value: Any, field: str = "amount_cents") -> int:
    """
    Strict minor-unit amount: positive integer, no decimals, no booleans.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidCheckoutRequestError(f"{field} must be a positive integer")
    if isinstance(value, int):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation and decimal points
        if not _PLAIN_INT.fullmatch(stripped):
            raise InvalidCheckoutRequestError(f"{field} must be a plain integer")
        cents = int(stripped)
    else:
        raise InvalidCheckoutRequestError(f"{field} must be an integer, not {type(value).__name__}")

    if cents <= 0:
        raise InvalidCheckoutRequestError(f"{field} must be positive")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidCheckoutRequestError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return cents


def major_to_cents(value: Any, field: str = "amount") -> int:
    """Major currency units (e.g. 12.5) -> cents, rounded half-up."""
    if isinstance(value, bool) or value is None:
        raise InvalidCheckoutRequestError(f"{field} must be a positive number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidCheckoutRequestError(f"{field} must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise InvalidCheckoutRequestError(f"{field} must be a positive number")

    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise InvalidCheckoutRequestError(f"{field} is too small")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidCheckoutRequestError(f"{field} exceeds maximum")
    return cents


def parse_amount_cents(data: dict) -> int:
    """Accept `amount_cents` (minor units) or legacy `amount` (major units)."""
    if data.get("amount_cents") is not None:
        return coerce_amount_cents(data.get("amount_cents"))
    if data.get("amount") is not None:
        return major_to_cents(data.get("amount"))
    raise InvalidCheckoutRequestError("amount_cents (or amount) is required")


def parse_items(data: dict) -> list:
    """Cart line items from `items` (or the older `cart` key)."""
    items = data.get("items")
    if items is None:
        items = data.get("cart")
    if items is None:
        return []
    if not isinstance(items, list):
        raise InvalidCheckoutRequestError("items must be a list")
    return [item for item in items if isinstance(item, dict)]
