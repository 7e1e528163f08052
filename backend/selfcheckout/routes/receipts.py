# backend/selfcheckout/routes/receipts.py
"""
Public receipt lookup. No authentication: the token is the credential.
"""

from flask import Blueprint, jsonify, current_app

from ..services import receipt_service


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


@receipts_bp.get("/<token>")
def get_receipt_route(token: str):
    try:
        receipt = receipt_service.get_receipt(token)
        if receipt is None:
            return jsonify({"error": "Receipt not found"}), 404

        return jsonify({"receipt": receipt.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to load receipt")
        return jsonify({"error": "Internal server error"}), 500
