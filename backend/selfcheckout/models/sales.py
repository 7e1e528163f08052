from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Purchase(db.Model):
    """
    Completed sale ("transaction").

    WHY: One row per paid checkout, written exactly once by whichever path
    wins the idempotency race (direct record-and-decrement, payment finalize,
    or any other writer). Line items are snapshotted at sale time.

    inventory_decremented is the safety-net guard: paths that decrement stock
    in the same transaction set it on insert, anything else leaves it False
    and the reconciler picks the purchase up from the purchase.created event.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_station_created", "station_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.String(64), db.ForeignKey("stations.id"), nullable=False, index=True)
    customer_ref = db.Column(db.String(128), nullable=False, default="Guest")

    # Snapshot of cart line items as submitted
    items = db.Column(db.JSON, nullable=False, default=list)

    total_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)
    payment_status = db.Column(db.String(64), nullable=False)
    payment_status_raw = db.Column(db.String(64), nullable=True)
    payment_details = db.Column(db.JSON, nullable=True)

    receipt_token = db.Column(db.String(64), nullable=True, unique=True)

    # Decrement attribution
    inventory_decremented = db.Column(db.Boolean, nullable=False, default=False, index=True)
    inventory_decrement_source = db.Column(db.String(64), nullable=True)
    inventory_decremented_at = db.Column(db.DateTime(timezone=True), nullable=True)
    inventory_decrement_result = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    station = db.relationship("Station")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} station={self.station_id!r} total={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "customer_ref": self.customer_ref,
            "items": self.items or [],
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "payment_status_raw": self.payment_status_raw,
            "payment_details": self.payment_details,
            "receipt_token": self.receipt_token,
            "inventory_decremented": self.inventory_decremented,
            "inventory_decrement_source": self.inventory_decrement_source,
            "inventory_decremented_at": to_utc_z(self.inventory_decremented_at) if self.inventory_decremented_at else None,
            "inventory_decrement_result": self.inventory_decrement_result,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PublicReceipt(db.Model):
    """
    Public receipt projection, keyed by an unguessable token.

    WHY: Customers open receipts from a QR code without logging in, so the
    token is the only authorization. Keyed by token (not purchase id) so
    sequential ids are never exposed. Never mutated after creation.
    """
    __tablename__ = "public_receipts"

    token = db.Column(db.String(64), primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, unique=True)
    station_id = db.Column(db.String(64), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    payment_status = db.Column(db.String(64), nullable=False)
    items = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "purchase_id": self.purchase_id,
            "station_id": self.station_id,
            "total_cents": self.total_cents,
            "payment_status": self.payment_status,
            "items": self.items or [],
            "created_at": to_utc_z(self.created_at),
        }


class PaymentRecord(db.Model):
    """
    Local projection of a provider payment (Billplz bill, Stripe checkout session).

    IDEMPOTENCY: linked_purchase_id is the finalize marker. It is written in
    the same transaction that creates the purchase and is never overwritten;
    any later finalize for the same provider reference returns the linked
    purchase instead of decrementing again.
    """
    __tablename__ = "payment_records"
    __table_args__ = (
        db.UniqueConstraint("provider", "provider_ref", name="uq_payment_records_provider_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False, index=True)  # BILLPLZ, STRIPE, SIMULATED
    provider_ref = db.Column(db.String(128), nullable=False)
    station_id = db.Column(db.String(64), nullable=True, index=True)
    amount_cents = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(255), nullable=True)
    checkout_url = db.Column(db.String(512), nullable=True)

    # Provider-reported status (metadata only, never drives the marker)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    provider_state = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_checked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    callback_received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_callback = db.Column(db.JSON, nullable=True)

    # Idempotency marker
    linked_purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, unique=True)
    receipt_token = db.Column(db.String(64), nullable=True)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    linked_purchase = db.relationship("Purchase", foreign_keys=[linked_purchase_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_finalized(self) -> bool:
        return self.linked_purchase_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "provider_ref": self.provider_ref,
            "station_id": self.station_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "checkout_url": self.checkout_url,
            "paid": self.paid,
            "provider_state": self.provider_state,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "last_checked_at": to_utc_z(self.last_checked_at) if self.last_checked_at else None,
            "callback_received_at": to_utc_z(self.callback_received_at) if self.callback_received_at else None,
            "linked_purchase_id": self.linked_purchase_id,
            "receipt_token": self.receipt_token,
            "finalized_at": to_utc_z(self.finalized_at) if self.finalized_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PaymentCallback(db.Model):
    """Append-only log of provider callbacks (webhooks) as received."""
    __tablename__ = "payment_callbacks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False, index=True)
    provider_ref = db.Column(db.String(128), nullable=True, index=True)
    paid = db.Column(db.String(16), nullable=True)
    paid_at = db.Column(db.String(64), nullable=True)
    signature = db.Column(db.String(255), nullable=True)
    body = db.Column(db.JSON, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "provider_ref": self.provider_ref,
            "paid": self.paid,
            "paid_at": self.paid_at,
            "signature": self.signature,
            "body": self.body,
            "received_at": to_utc_z(self.received_at),
        }
