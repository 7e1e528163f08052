# Overview: Service-layer operations for provider payments; verifies, finalizes and tracks gateway payments.

"""
Payment Finalization Service

WHY: A paid bill or checkout session can be reported complete by the kiosk
return page, the provider callback and a manual retry, in any order and
concurrently. Whichever arrives first creates the purchase; the others must
converge on the same purchase without touching stock again.

STATE MACHINE (per provider payment reference):
    Unverified -> Verified(paid)   -> Finalized
    Unverified -> Verified(unpaid) -> Rejected (PaymentNotConfirmedError)

DESIGN PRINCIPLES:
- Gateway status is fetched BEFORE the storage transaction (network I/O
  never holds a write lock).
- PaymentRecord.linked_purchase_id is the idempotency marker. It is read and
  written inside the same run_with_retry attempt as the decrement, purchase
  and receipt, so concurrent finalizers serialize on it.
- Status refresh and callbacks update provider metadata only, never the marker.
"""

from __future__ import annotations

from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Purchase, PaymentRecord, PaymentCallback
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    AmountMismatchError,
    InvalidCheckoutRequestError,
    PaymentNotConfirmedError,
    ReferenceMismatchError,
)
from .gateways import (
    GatewayStatus,
    PaymentGateway,
    PROVIDER_BILLPLZ,
    PROVIDER_SIMULATED,
    PROVIDER_STRIPE,
    get_gateway,
    normalize_provider,
)
from .inventory_service import plan_decrement
from .purchase_service import (
    DECREMENT_SOURCE_FINALIZE,
    DEFAULT_CUSTOMER_REF,
    PurchaseResult,
    create_purchase_with_receipt,
    payment_status_label,
)
from .station_service import ensure_active_station, normalize_station_id


_TRUTHY = {"true", "1", "yes", "paid"}


def _normalize_ref(payment_ref) -> str:
    value = str(payment_ref).strip() if payment_ref is not None else ""
    if not value:
        raise InvalidCheckoutRequestError("payment_ref is required.")
    if len(value) > 128:
        raise InvalidCheckoutRequestError("payment_ref is too long.")
    return value


def _raw_status_label(status: GatewayStatus) -> str:
    return f"Paid ({status.provider_state})" if status.provider_state else "Paid"


def _apply_status(record: PaymentRecord, status: GatewayStatus) -> None:
    """Copy provider-reported metadata onto the local record (never the marker)."""
    record.paid = bool(status.paid)
    record.provider_state = status.provider_state
    if status.paid_at:
        record.paid_at = parse_iso_datetime(status.paid_at) or record.paid_at
    elif status.paid and record.paid_at is None:
        record.paid_at = utcnow()
    if status.checkout_url:
        record.checkout_url = status.checkout_url
    record.last_checked_at = utcnow()


def _get_record(provider: str, provider_ref: str, *, lock: bool = False) -> PaymentRecord | None:
    query = db.session.query(PaymentRecord).filter_by(provider=provider, provider_ref=provider_ref)
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.first()


# =============================================================================
# FINALIZATION
# =============================================================================

class PaymentFinalizer:
    """
    Finalizes paid payments of one provider.

    Billplz bills and Stripe checkout sessions share this state machine; only
    the gateway behind get_status() and the status label differ.
    """

    def __init__(self, provider: str):
        self.provider = normalize_provider(provider)

    def __repr__(self) -> str:
        return f"<PaymentFinalizer provider={self.provider}>"

    @property
    def decrement_source(self) -> str:
        return DECREMENT_SOURCE_FINALIZE.format(provider=self.provider.lower())

    def verify(self, status: GatewayStatus, *, payment_ref: str, station_id: str, amount_cents: int) -> None:
        """
        Check a fetched gateway status against the expected charge.

        Raises:
            PaymentNotConfirmedError, AmountMismatchError, ReferenceMismatchError
        """
        if not status.paid:
            raise PaymentNotConfirmedError(
                "Payment is not paid.",
                details={
                    "provider": self.provider,
                    "payment_ref": payment_ref,
                    "provider_state": status.provider_state,
                    "paid": False,
                },
            )

        if status.amount_minor_units is None or int(status.amount_minor_units) != amount_cents:
            raise AmountMismatchError(
                "Payment amount mismatch.",
                details={
                    "provider": self.provider,
                    "payment_ref": payment_ref,
                    "expected_amount_cents": amount_cents,
                    "paid_amount_cents": status.amount_minor_units,
                },
            )

        # Only checked when the provider echoes a reference back
        if status.reference and str(status.reference) != station_id:
            raise ReferenceMismatchError(
                "Payment reference does not match stationId.",
                details={
                    "provider": self.provider,
                    "payment_ref": payment_ref,
                    "station_id": station_id,
                    "reference": status.reference,
                },
            )

    def finalize(
        self,
        *,
        payment_ref: str,
        station_id: str,
        items: list,
        amount_cents: int,
        customer_ref: str | None = None,
        gateway: PaymentGateway | None = None,
    ) -> PurchaseResult:
        """
        Verify a provider payment and record the purchase exactly once.

        Returns:
            PurchaseResult; already_finalized=True when an earlier call (or a
            concurrent one) already linked a purchase to this payment.

        Raises:
            InvalidCheckoutRequestError, UnknownStationError,
            PaymentProviderError, PaymentNotConfirmedError,
            AmountMismatchError, ReferenceMismatchError,
            NoInventoryRecordError, InsufficientStockError,
            TransactionConflictError
        """
        ref = _normalize_ref(payment_ref)
        sid = normalize_station_id(station_id)
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise InvalidCheckoutRequestError("amount must be a positive number.")
        snapshot = [dict(item) for item in (items or []) if isinstance(item, dict)]

        ensure_active_station(sid)

        if gateway is None:
            gateway = get_gateway(self.provider)
        status = gateway.get_status(ref)

        try:
            self.verify(status, payment_ref=ref, station_id=sid, amount_cents=amount_cents)
        except (PaymentNotConfirmedError, AmountMismatchError, ReferenceMismatchError) as exc:
            current_app.logger.warning(
                "Finalize rejected for %s %s: %s", self.provider, ref, exc.code
            )
            raise

        status_label = payment_status_label(self.provider)
        payment_details = {
            "provider": self.provider,
            "reference": ref,
            "state": status.provider_state,
            "paid_at": status.paid_at,
            "amount_cents": amount_cents,
        }

        def _op():
            record = _get_record(self.provider, ref, lock=True)

            if record is not None and record.is_finalized:
                _apply_status(record, status)
                purchase_id = record.linked_purchase_id
                token = record.receipt_token
                db.session.commit()
                return PurchaseResult(purchase_id=purchase_id, receipt_token=token, already_finalized=True)

            plan = plan_decrement(snapshot)

            if record is None:
                record = PaymentRecord(
                    provider=self.provider,
                    provider_ref=ref,
                    station_id=sid,
                    amount_cents=amount_cents,
                )
                db.session.add(record)
            _apply_status(record, status)

            purchase, token = create_purchase_with_receipt(
                plan=plan,
                station_id=sid,
                customer_ref=customer_ref or DEFAULT_CUSTOMER_REF,
                items=snapshot,
                total_cents=amount_cents,
                payment_method=self.provider,
                payment_status=status_label,
                payment_status_raw=_raw_status_label(status),
                decrement_source=self.decrement_source,
                payment_details=payment_details,
            )

            # Idempotency marker, same attempt as the decrement
            record.linked_purchase_id = purchase.id
            record.receipt_token = token
            record.finalized_at = utcnow()
            purchase_id = purchase.id

            db.session.commit()
            return PurchaseResult(purchase_id=purchase_id, receipt_token=token)

        result = run_with_retry(_op)
        if result.already_finalized:
            current_app.logger.info(
                "Payment %s %s already finalized as purchase %s", self.provider, ref, result.purchase_id
            )
        else:
            current_app.logger.info(
                "Finalized %s payment %s as purchase %s (%d cents, station %s)",
                self.provider, ref, result.purchase_id, amount_cents, sid,
            )
        return result


FINALIZERS = {
    PROVIDER_BILLPLZ: PaymentFinalizer(PROVIDER_BILLPLZ),
    PROVIDER_STRIPE: PaymentFinalizer(PROVIDER_STRIPE),
    PROVIDER_SIMULATED: PaymentFinalizer(PROVIDER_SIMULATED),
}


def finalize_payment(
    provider: str,
    payment_ref: str,
    station_id: str,
    items: list,
    amount_cents: int,
    *,
    customer_ref: str | None = None,
    gateway: PaymentGateway | None = None,
) -> PurchaseResult:
    finalizer = FINALIZERS[normalize_provider(provider)]
    return finalizer.finalize(
        payment_ref=payment_ref,
        station_id=station_id,
        items=items,
        amount_cents=amount_cents,
        customer_ref=customer_ref,
        gateway=gateway,
    )


# =============================================================================
# PAYMENT RECORD TRACKING
# =============================================================================

def register_payment(
    *,
    provider: str,
    provider_ref: str,
    station_id: str,
    amount_cents: int,
    description: str | None = None,
    checkout_url: str | None = None,
) -> PaymentRecord:
    """
    Store the local projection of a bill / checkout session when it is created.

    Re-registering an unfinalized reference updates amount, station and
    description; a finalized one is returned unchanged.
    """
    key = normalize_provider(provider)
    ref = _normalize_ref(provider_ref)
    sid = normalize_station_id(station_id)
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidCheckoutRequestError("amount must be a positive number.")

    ensure_active_station(sid)

    def _op():
        record = _get_record(key, ref, lock=True)
        if record is None:
            record = PaymentRecord(provider=key, provider_ref=ref, created_at=utcnow())
            db.session.add(record)
        elif record.is_finalized:
            db.session.commit()
            return record

        record.station_id = sid
        record.amount_cents = amount_cents
        record.description = description
        if checkout_url:
            record.checkout_url = checkout_url
        db.session.commit()
        return record

    record = run_with_retry(_op)
    current_app.logger.info("Registered %s payment %s for station %s", key, ref, sid)
    return record


def refresh_payment_status(provider: str, provider_ref: str, *, gateway: PaymentGateway | None = None) -> tuple[PaymentRecord, GatewayStatus]:
    """Fetch live status and store it on the payment record. Never finalizes."""
    key = normalize_provider(provider)
    ref = _normalize_ref(provider_ref)
    if gateway is None:
        gateway = get_gateway(key)
    status = gateway.get_status(ref)

    def _op():
        record = _get_record(key, ref, lock=True)
        if record is None:
            record = PaymentRecord(
                provider=key,
                provider_ref=ref,
                amount_cents=status.amount_minor_units,
                created_at=utcnow(),
            )
            db.session.add(record)
        _apply_status(record, status)
        db.session.commit()
        return record

    return run_with_retry(_op), status


def _callback_ref(body: dict) -> str | None:
    for key in ("id", "bill_id", "payment_ref", "session_id"):
        value = body.get(key)
        if value:
            return str(value).strip()[:128]
    return None


def record_callback(provider: str, body: Any, signature: str | None = None) -> PaymentCallback:
    """
    Log a provider callback and merge it onto the payment record.

    Callbacks are unauthenticated hints: they update metadata only. Stock is
    decremented by finalize_payment after a live status check.
    """
    key = normalize_provider(provider)
    payload = dict(body) if isinstance(body, dict) else {}
    ref = _callback_ref(payload)
    paid_raw = payload.get("paid")
    paid = str(paid_raw).strip().lower() if paid_raw is not None else None
    paid_at = payload.get("paid_at")
    sig = signature or payload.get("x_signature")

    def _op():
        now = utcnow()
        entry = PaymentCallback(
            provider=key,
            provider_ref=ref,
            paid=paid,
            paid_at=str(paid_at) if paid_at is not None else None,
            signature=str(sig)[:255] if sig else None,
            body=payload,
            received_at=now,
        )
        db.session.add(entry)

        if ref:
            record = _get_record(key, ref, lock=True)
            if record is None:
                record = PaymentRecord(provider=key, provider_ref=ref, created_at=now)
                db.session.add(record)
            record.paid = bool(record.paid) or paid in _TRUTHY
            if paid_at:
                record.paid_at = parse_iso_datetime(str(paid_at)) or record.paid_at
            record.callback_received_at = now
            record.last_callback = payload

        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    current_app.logger.info("Stored %s callback for %s (paid=%s)", key, ref, paid)
    return entry


def get_payment_record(provider: str, provider_ref: str) -> PaymentRecord | None:
    return _get_record(normalize_provider(provider), _normalize_ref(provider_ref))


def get_linked_purchase(record: PaymentRecord) -> Purchase | None:
    if not record.is_finalized:
        return None
    return db.session.get(Purchase, record.linked_purchase_id)
