# Overview: Service-layer operations for purchases; records completed sales with their stock decrement and receipt.

"""
Purchase Recording Service

WHY: A purchase, its stock decrement and its public receipt must become
visible together or not at all. Every path that creates a purchase with an
immediate decrement goes through create_purchase_with_receipt() inside a
single run_with_retry attempt.

DESIGN PRINCIPLES:
- Read (resolve + validate) first, then write: purchase, receipt, stock.
- The purchase is flagged inventory_decremented=True on insert, so the
  safety-net reconciler skips it when the purchase.created event arrives.
- A rejected purchase leaves no purchase row, no receipt and no stock change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Purchase
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .errors import InvalidCheckoutRequestError, PurchaseNotFoundError
from .inventory_service import DecrementPlan, apply_decrement, plan_decrement
from .receipt_service import issue_receipt
from .station_service import ensure_active_station, normalize_station_id


# =============================================================================
# PAYMENT METHODS & LABELS (CONSTANTS)
# =============================================================================

PAYMENT_METHOD_SIMULATED = "SIMULATED"
PAYMENT_METHOD_BILLPLZ = "BILLPLZ"
PAYMENT_METHOD_STRIPE = "STRIPE"

PAYMENT_STATUS_LABELS = {
    PAYMENT_METHOD_BILLPLZ: "Paid (Billplz)",
    PAYMENT_METHOD_STRIPE: "Paid (Stripe)",
}
PAYMENT_STATUS_DEFAULT = "Paid"

DEFAULT_CUSTOMER_REF = "Guest"

DECREMENT_SOURCE_DIRECT = "direct:record_and_decrement"
DECREMENT_SOURCE_FINALIZE = "finalize:{provider}"
DECREMENT_SOURCE_RECONCILER = "reconciler:purchase.created"


@dataclass(frozen=True)
class PurchaseResult:
    purchase_id: int
    receipt_token: str | None
    already_finalized: bool = False

    def to_dict(self) -> dict:
        return {
            "purchase_id": self.purchase_id,
            "receipt_token": self.receipt_token,
            "already_finalized": self.already_finalized,
        }


def payment_status_label(payment_method: str) -> str:
    return PAYMENT_STATUS_LABELS.get(payment_method, PAYMENT_STATUS_DEFAULT)


def normalize_payment_method(payment_method) -> str:
    value = str(payment_method).strip().upper() if payment_method else ""
    if not value:
        return PAYMENT_METHOD_SIMULATED
    if len(value) > 32:
        raise InvalidCheckoutRequestError("payment_method is too long")
    return value


def _validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidCheckoutRequestError(
            "amount must be a positive number.",
            details={"amount_cents": amount_cents},
        )
    return amount_cents


def _validate_items(items) -> list:
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise InvalidCheckoutRequestError("items must be a list")
    return [dict(item) for item in items if isinstance(item, dict)]


def create_purchase_with_receipt(
    *,
    plan: DecrementPlan,
    station_id: str,
    customer_ref: str,
    items: list,
    total_cents: int,
    payment_method: str,
    payment_status: str,
    decrement_source: str,
    payment_status_raw: str | None = None,
    payment_details: Any = None,
) -> tuple[Purchase, str]:
    """
    Write purchase + public receipt + stock decrement for an already validated plan.

    Call only inside a run_with_retry attempt, after every read of that
    attempt (plan_decrement included). Does not commit.
    """
    decrement = apply_decrement(plan)
    now = utcnow()

    purchase = Purchase(
        station_id=station_id,
        customer_ref=customer_ref or DEFAULT_CUSTOMER_REF,
        items=items,
        total_cents=total_cents,
        payment_method=payment_method,
        payment_status=payment_status,
        payment_status_raw=payment_status_raw or payment_status,
        payment_details=payment_details,
        inventory_decremented=True,
        inventory_decrement_source=decrement_source,
        inventory_decremented_at=now,
        inventory_decrement_result=decrement.to_dict(),
        created_at=now,
    )
    db.session.add(purchase)
    db.session.flush()  # Get purchase ID

    token = issue_receipt(
        purchase_id=purchase.id,
        station_id=station_id,
        total_cents=total_cents,
        payment_status=payment_status,
        items=items,
    )
    purchase.receipt_token = token
    db.session.flush()
    return purchase, token


# =============================================================================
# DIRECT PATH
# =============================================================================

def record_and_decrement(
    *,
    station_id: str,
    items: list,
    amount_cents: int,
    payment_method: str | None = PAYMENT_METHOD_SIMULATED,
    customer_ref: str | None = None,
    payment_details: Any = None,
) -> PurchaseResult:
    """
    Record an already-confirmed (or simulated) payment and decrement stock.

    No gateway check. Purchase, receipt and decrement commit in one
    transaction; the purchase is flagged as decremented so the reconciler
    skips it.

    Raises:
        InvalidCheckoutRequestError, UnknownStationError,
        NoInventoryRecordError, InsufficientStockError,
        TransactionConflictError
    """
    sid = normalize_station_id(station_id)
    total_cents = _validate_amount(amount_cents)
    snapshot = _validate_items(items)
    method = normalize_payment_method(payment_method)
    status = payment_status_label(method)

    ensure_active_station(sid)

    def _op():
        plan = plan_decrement(snapshot)

        purchase, token = create_purchase_with_receipt(
            plan=plan,
            station_id=sid,
            customer_ref=customer_ref or DEFAULT_CUSTOMER_REF,
            items=snapshot,
            total_cents=total_cents,
            payment_method=method,
            payment_status=status,
            decrement_source=DECREMENT_SOURCE_DIRECT,
            payment_details=payment_details,
        )
        purchase_id = purchase.id

        db.session.commit()
        return PurchaseResult(purchase_id=purchase_id, receipt_token=token)

    result = run_with_retry(_op)
    current_app.logger.info(
        "Recorded purchase %s at station %s (%s, %d cents)",
        result.purchase_id, sid, method, total_cents,
    )
    return result


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFoundError(
            f"Purchase {purchase_id} not found",
            details={"purchase_id": purchase_id},
        )
    return purchase
