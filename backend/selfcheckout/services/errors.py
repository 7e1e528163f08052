# Overview: Checkout error taxonomy shared by services and routes.

"""
All purchase-path failures derive from CheckoutError. Each carries a
human-readable message, a machine code and a structured `details` dict
(product ids, quantities, amounts) so the kiosk can render a useful message.

Resolution, validation and payment verification errors are raised before
anything is written and are terminal: retrying sees the same state.
TransactionConflictError is the only retryable one; it surfaces only after
the storage retry loop is exhausted.
"""


class CheckoutError(Exception):
    """Base class for purchase path failures."""
    code = "checkout_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class InvalidCheckoutRequestError(CheckoutError):
    code = "invalid_request"
    http_status = 400


class UnknownStationError(CheckoutError):
    code = "unknown_station"
    http_status = 403


class PaymentProviderError(CheckoutError):
    """Unknown provider, or no gateway configured for it."""
    code = "payment_provider"
    http_status = 400


class PurchaseNotFoundError(CheckoutError):
    code = "purchase_not_found"
    http_status = 404


class NoInventoryRecordError(CheckoutError):
    code = "no_inventory_record"
    http_status = 409

    def __init__(self, product_id: str):
        super().__init__(
            f"No inventory record for product {product_id}.",
            details={
                "product_id": product_id,
                "hint": "Expected an inventory record whose id, productID/productId "
                        "or product reference points at this product.",
            },
        )
        self.product_id = product_id


class InsufficientStockError(CheckoutError):
    code = "insufficient_stock"
    http_status = 409

    def __init__(self, product_id: str, current_stock: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id}.",
            details={
                "product_id": product_id,
                "current_stock": current_stock,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.current_stock = current_stock
        self.requested = requested


class PaymentNotConfirmedError(CheckoutError):
    code = "payment_not_confirmed"
    http_status = 409


class AmountMismatchError(CheckoutError):
    code = "amount_mismatch"
    http_status = 409


class ReferenceMismatchError(CheckoutError):
    code = "reference_mismatch"
    http_status = 409


class TransactionConflictError(CheckoutError):
    """Storage contention outlasted the retry loop; safe to retry the request."""
    code = "transaction_conflict"
    http_status = 503
