# Overview: Safety-net inventory reconciler and purchase.created event delivery.

"""
Safety-Net Reconciler

WHY: Any writer can insert a purchase (older kiosk builds, admin tools,
imports). Whatever path created it, every purchase produces a
purchase.created outbox row (models/events.py). This module consumes those
rows and decrements stock for purchases that were inserted without it.

DESIGN PRINCIPLES:
- reconcile_purchase() re-reads inventory_decremented inside its own
  transaction; set -> no-op. Safe to call any number of times.
- Delivery is at-least-once: an event is marked DONE only after the
  reconcile committed. Failures are retried with exponential backoff and
  parked as FAILED after PURCHASE_EVENT_MAX_ATTEMPTS.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Purchase, PurchaseEvent
from ..models.events import (
    EVENT_STATUS_DONE,
    EVENT_STATUS_FAILED,
    EVENT_STATUS_PENDING,
    TOPIC_PURCHASE_CREATED,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import PurchaseNotFoundError
from .inventory_service import DecrementResult, apply_decrement, plan_decrement
from .purchase_service import DECREMENT_SOURCE_RECONCILER


RECONCILE_ALREADY_DECREMENTED = "already_decremented"
RECONCILE_NO_ITEMS = "no_items"
RECONCILE_DECREMENTED = "decremented"

RETRY_BACKOFF_BASE_SECONDS = 60
RETRY_BACKOFF_MAX_SECONDS = 3600


@dataclass(frozen=True)
class ReconcileResult:
    purchase_id: int
    status: str
    decrement: DecrementResult | None = None

    def to_dict(self) -> dict:
        return {
            "purchase_id": self.purchase_id,
            "status": self.status,
            "decrement": self.decrement.to_dict() if self.decrement else None,
        }


def reconcile_purchase(purchase_id: int) -> ReconcileResult:
    """
    Decrement stock for a purchase that was recorded without it.

    Raises:
        PurchaseNotFoundError, NoInventoryRecordError,
        InsufficientStockError, TransactionConflictError
    """
    def _op():
        purchase = (
            lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id))
            .populate_existing()
            .first()
        )
        if purchase is None:
            raise PurchaseNotFoundError(
                f"Purchase {purchase_id} not found",
                details={"purchase_id": purchase_id},
            )

        if purchase.inventory_decremented:
            db.session.commit()
            return ReconcileResult(purchase_id, RECONCILE_ALREADY_DECREMENTED)

        plan = plan_decrement(purchase.items or [])
        if not plan:
            db.session.commit()
            return ReconcileResult(purchase_id, RECONCILE_NO_ITEMS)

        decrement = apply_decrement(plan)
        purchase.inventory_decremented = True
        purchase.inventory_decrement_source = DECREMENT_SOURCE_RECONCILER
        purchase.inventory_decremented_at = utcnow()
        purchase.inventory_decrement_result = decrement.to_dict()
        db.session.commit()
        return ReconcileResult(purchase_id, RECONCILE_DECREMENTED, decrement)

    try:
        result = run_with_retry(_op)
    except Exception:
        current_app.logger.exception("Safety-net decrement failed for purchase %s", purchase_id)
        raise

    if result.status == RECONCILE_DECREMENTED:
        current_app.logger.info(
            "Safety-net decrement applied for purchase %s (%d records)",
            purchase_id, result.decrement.updated_record_count,
        )
    return result


# Subscriber for purchase.created
on_purchase_created = reconcile_purchase


# =============================================================================
# EVENT DELIVERY
# =============================================================================

def _retry_delay(attempts: int) -> timedelta:
    seconds = RETRY_BACKOFF_BASE_SECONDS * (2 ** max(attempts - 1, 0))
    return timedelta(seconds=min(seconds, RETRY_BACKOFF_MAX_SECONDS))


def _mark_delivered(event_id: int) -> None:
    def _op():
        event = db.session.get(PurchaseEvent, event_id, populate_existing=True)
        event.status = EVENT_STATUS_DONE
        event.attempts = (event.attempts or 0) + 1
        event.last_error = None
        event.next_retry_at = None
        event.delivered_at = utcnow()
        db.session.commit()

    run_with_retry(_op)


def _record_delivery_failure(event_id: int, error: Exception, max_attempts: int) -> str:
    def _op():
        event = db.session.get(PurchaseEvent, event_id, populate_existing=True)
        event.attempts = (event.attempts or 0) + 1
        event.last_error = f"{type(error).__name__}: {error}"[:2000]
        if event.attempts >= max_attempts:
            event.status = EVENT_STATUS_FAILED
            event.next_retry_at = None
        else:
            event.next_retry_at = utcnow() + _retry_delay(event.attempts)
        status = event.status
        db.session.commit()
        return status

    return run_with_retry(_op)


def pending_events(limit: int | None = None) -> list[PurchaseEvent]:
    if limit is None:
        limit = current_app.config.get("PURCHASE_EVENT_BATCH_SIZE", 50)
    now = utcnow()
    return (
        db.session.query(PurchaseEvent)
        .filter(
            PurchaseEvent.topic == TOPIC_PURCHASE_CREATED,
            PurchaseEvent.status == EVENT_STATUS_PENDING,
            or_(PurchaseEvent.next_retry_at.is_(None), PurchaseEvent.next_retry_at <= now),
        )
        .order_by(PurchaseEvent.id)
        .limit(limit)
        .all()
    )


def drain_purchase_events(limit: int | None = None) -> dict:
    """
    Deliver due purchase.created events to on_purchase_created.

    Returns:
        {"delivered": n, "retrying": n, "failed": n}
    """
    max_attempts = current_app.config.get("PURCHASE_EVENT_MAX_ATTEMPTS", 5)
    counts = {"delivered": 0, "retrying": 0, "failed": 0}

    batch = [(event.id, event.purchase_id) for event in pending_events(limit)]
    # Release the read before each delivery opens its own transaction
    db.session.commit()

    for event_id, purchase_id in batch:
        try:
            on_purchase_created(purchase_id)
        except Exception as exc:
            status = _record_delivery_failure(event_id, exc, max_attempts)
            if status == EVENT_STATUS_FAILED:
                counts["failed"] += 1
                current_app.logger.error(
                    "purchase.created event %s for purchase %s parked after %d attempts",
                    event_id, purchase_id, max_attempts,
                )
            else:
                counts["retrying"] += 1
            continue

        _mark_delivered(event_id)
        counts["delivered"] += 1

    return counts
