# Overview: Flask API routes for checkout completion; parses input and returns JSON responses.

# backend/selfcheckout/routes/checkout.py
"""
Checkout Completion API Routes

WHY: The kiosk completes a sale in one of two ways:
- Simulated / offline payment: record the purchase and decrement stock
  directly (no gateway check).
- Online payment (Billplz bill, Stripe session): finalize after the gateway
  confirms the payment. Safe to call repeatedly; the first call wins.

Both return the purchase id and the public receipt token shown as a QR code.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_station
from ..services import payment_service, purchase_service
from ..services.errors import CheckoutError
from ..validation import parse_amount_cents, parse_items


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/record")
@require_station
def record_purchase_route():
    """
    Record a completed purchase and decrement stock.

    Request body:
    {
        "station_id": "KIOSK-01",
        "items": [{"id": "P-1", "name": "Milk", "price": 4.5, "quantity": 2}],
        "amount": 9.00,                 (or "amount_cents": 900)
        "payment_method": "SIMULATED",  (optional)
        "customer": "Guest"             (optional)
    }

    Returns:
        201: {purchase_id, receipt_token}
        400: Invalid input
        403: Unknown station
        409: Missing inventory record / insufficient stock
        503: Storage contention, retry
    """
    try:
        data = request.get_json() or {}

        amount_cents = parse_amount_cents(data)
        items = parse_items(data)

        result = purchase_service.record_and_decrement(
            station_id=g.station_id,
            items=items,
            amount_cents=amount_cents,
            payment_method=data.get("payment_method") or data.get("paymentMethod"),
            customer_ref=data.get("customer") or data.get("customer_ref"),
        )

        return jsonify(result.to_dict()), 201

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/finalize")
@require_station
def finalize_payment_route():
    """
    Finalize a paid provider payment.

    Request body:
    {
        "provider": "BILLPLZ",          (BILLPLZ, STRIPE, SIMULATED)
        "payment_ref": "bill-abc",      (bill id / checkout session id)
        "station_id": "KIOSK-01",
        "items": [...],
        "amount": 9.00                  (or "amount_cents": 900)
    }

    Returns:
        200: {purchase_id, receipt_token, already_finalized}
        400: Invalid input / unknown provider
        403: Unknown station
        409: Not paid, amount or reference mismatch, inventory rejection
        503: Storage contention, retry
    """
    try:
        data = request.get_json() or {}

        provider = data.get("provider")
        payment_ref = data.get("payment_ref") or data.get("billId") or data.get("sessionId")
        if not provider or not payment_ref:
            return jsonify({"error": "provider and payment_ref required"}), 400

        amount_cents = parse_amount_cents(data)
        items = parse_items(data)

        result = payment_service.finalize_payment(
            provider,
            payment_ref,
            g.station_id,
            items,
            amount_cents,
            customer_ref=data.get("customer") or data.get("customer_ref"),
        )

        return jsonify(result.to_dict()), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to finalize payment")
        return jsonify({"error": "Internal server error"}), 500
