from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_REF_COLLECTION = "products"


def product_ref_path(product_id: str) -> str:
    """Structured reference path for a catalog product, e.g. 'products/p-100'."""
    return f"{PRODUCT_REF_COLLECTION}/{product_id}"


class InventoryRecord(db.Model):
    """
    Stock level for one catalog product.

    WHY: Inventory rows were written by several generations of tag-linking
    and catalog tools, each naming the product link differently. A row may
    identify its product by:
    - its own id (current layout: id == product id)
    - product_id_primary: plain string, historically the "productID" field
    - product_id_secondary: plain string, historically the "productId" field
    - product_ref: structured reference path "products/<id>", historically
      stored under "productID", "productRef" or "product" (see product_ref_field)

    Several rows may point at the same product. They are all rewritten on
    every decrement so none of them drifts.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.CheckConstraint("stock_level >= 0", name="ck_inventory_stock_non_negative"),
    )

    id = db.Column(db.String(128), primary_key=True)

    product_id_primary = db.Column(db.String(128), nullable=True, index=True)
    product_id_secondary = db.Column(db.String(128), nullable=True, index=True)
    product_ref = db.Column(db.String(160), nullable=True, index=True)
    product_ref_field = db.Column(db.String(32), nullable=True)  # productID, productRef, product

    stock_level = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryRecord id={self.id!r} stock={self.stock_level}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id_primary": self.product_id_primary,
            "product_id_secondary": self.product_id_secondary,
            "product_ref": self.product_ref,
            "product_ref_field": self.product_ref_field,
            "stock_level": self.stock_level,
            "created_at": to_utc_z(self.created_at),
            "last_updated": to_utc_z(self.last_updated) if self.last_updated else None,
            "version_id": self.version_id,
        }
