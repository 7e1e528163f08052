# Overview: Flask API routes for inventory diagnostics.

# backend/selfcheckout/routes/inventory.py
"""
Inventory Resolution API Routes

WHY: Stock for one product can live in several legacy records. This read-only
view shows which records a product id matches, by which rule, and which one
is canonical (the one stock is validated against).
"""

from flask import Blueprint, jsonify, current_app

from ..services import inventory_service
from ..services.errors import CheckoutError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<product_id>/resolve")
def resolve_product_route(product_id: str):
    """
    Returns:
        200: {product_id, canonical, matches}
        409: No inventory record for the product
    """
    try:
        resolution = inventory_service.resolve_inventory_records(product_id)
        return jsonify(resolution.to_dict()), 200

    except CheckoutError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to resolve inventory records")
        return jsonify({"error": "Internal server error"}), 500
