# Overview: Public receipt issuing and lookup.

from __future__ import annotations

import re
import secrets
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from flask import current_app

from ..extensions import db
from ..models import PublicReceipt
from ..time_utils import utcnow
from .inventory_service import CartLineItem


_TOKEN_PATTERN = re.compile(r"[0-9a-f]{16,128}")


def generate_receipt_token(nbytes: int | None = None) -> str:
    """CSPRNG token, hex encoded (URL-safe). 16 bytes -> 32 chars."""
    if nbytes is None:
        nbytes = current_app.config.get("RECEIPT_TOKEN_BYTES", 16)
    return secrets.token_hex(max(int(nbytes), 16))


def _display_price(value: Any):
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        amount = Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        return 0
    if not amount.is_finite():
        return 0
    return int(amount) if amount == amount.to_integral_value() else float(amount)


def normalize_receipt_items(items: Iterable[Any]) -> list[dict]:
    """Display-safe projection of cart items: id, sku, name, price, quantity."""
    normalized = []
    for raw in items or []:
        if not isinstance(raw, dict):
            continue
        item = CartLineItem.from_dict(raw)
        normalized.append({
            "id": item.product_id,
            "sku": item.sku,
            "name": item.name,
            "price": _display_price(item.price),
            "quantity": item.quantity,
        })
    return normalized


def issue_receipt(
    *,
    purchase_id: int,
    station_id: str,
    total_cents: int,
    payment_status: str,
    items: Iterable[Any],
) -> str:
    """
    Stage the public receipt for a purchase and return its token.

    Must be called inside the transaction that creates the purchase; the
    caller commits both together.
    """
    token = generate_receipt_token()
    receipt = PublicReceipt(
        token=token,
        purchase_id=purchase_id,
        station_id=station_id,
        total_cents=total_cents,
        payment_status=payment_status,
        items=normalize_receipt_items(items),
        created_at=utcnow(),
    )
    db.session.add(receipt)
    return token


def get_receipt(token: str | None) -> PublicReceipt | None:
    """Public lookup by token. Malformed tokens never reach the database."""
    if not token:
        return None
    token = str(token).strip().lower()
    if not _TOKEN_PATTERN.fullmatch(token):
        return None
    return db.session.get(PublicReceipt, token)
