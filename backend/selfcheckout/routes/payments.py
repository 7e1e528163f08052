# Overview: Flask API routes for provider payment records; registration, status refresh and callbacks.

# backend/selfcheckout/routes/payments.py
"""
Payment Record API Routes

WHY: The kiosk registers a bill / checkout session when it creates one, polls
its status while the customer pays, and the provider posts callbacks. None
of these finalize the purchase; that is POST /api/checkout/finalize.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_station
from ..services import payment_service
from ..services.errors import CheckoutError
from ..validation import parse_amount_cents


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/")
@require_station
def register_payment_route():
    """
    Register a provider payment for a station.

    Request body:
    {
        "provider": "BILLPLZ",
        "payment_ref": "bill-abc",
        "station_id": "KIOSK-01",
        "amount": 9.00,                 (or "amount_cents": 900)
        "description": "Self-checkout", (optional)
        "checkout_url": "https://..."   (optional)
    }

    Returns:
        201: Payment record
        400: Invalid input
        403: Unknown station
    """
    try:
        data = request.get_json() or {}

        provider = data.get("provider")
        payment_ref = data.get("payment_ref")
        if not provider or not payment_ref:
            return jsonify({"error": "provider and payment_ref required"}), 400

        record = payment_service.register_payment(
            provider=provider,
            provider_ref=payment_ref,
            station_id=data.get("station_id") or data.get("stationId"),
            amount_cents=parse_amount_cents(data),
            description=data.get("description"),
            checkout_url=data.get("checkout_url"),
        )

        return jsonify({"payment": record.to_dict()}), 201

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to register payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<provider>/<path:payment_ref>")
def payment_status_route(provider: str, payment_ref: str):
    """
    Refresh a payment's status from the provider.

    Returns:
        200: {payment, status, purchase}
        400: Unknown or unconfigured provider
    """
    try:
        record, status = payment_service.refresh_payment_status(provider, payment_ref)
        purchase = payment_service.get_linked_purchase(record)

        return jsonify({
            "payment": record.to_dict(),
            "status": status.to_dict(),
            "purchase": {
                "purchase_id": purchase.id,
                "receipt_token": purchase.receipt_token,
            } if purchase else None,
        }), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to refresh payment status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<provider>/callback")
def payment_callback_route(provider: str):
    """
    Provider callback (webhook).

    Always acknowledged with 200 so the provider stops retrying; failures are
    logged. Accepts JSON or form-encoded bodies.
    """
    try:
        body = request.get_json(silent=True)
        if body is None:
            body = request.form.to_dict()
        signature = request.headers.get("X-Signature") or request.headers.get("Stripe-Signature")

        payment_service.record_callback(provider, body, signature=signature)

    except CheckoutError as e:
        current_app.logger.warning("Rejected %s callback: %s", provider, e)
    except Exception:
        current_app.logger.exception("Failed to store %s callback", provider)

    return "OK", 200
