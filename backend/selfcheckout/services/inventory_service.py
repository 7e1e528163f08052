# Overview: Service-layer operations for inventory; resolves legacy stock records and applies decrements.

# backend/selfcheckout/services/inventory_service.py

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable

from flask import current_app

from ..extensions import db
from ..models import InventoryRecord, product_ref_path
from ..time_utils import utcnow
from .errors import InsufficientStockError, NoInventoryRecordError
"""
Inventory Invariants (authoritative)

Record resolution:
- A product's stock may live in several InventoryRecord rows (legacy duplication).
- Candidates come from a fixed, ranked rule list (MATCH_RULES); a row matched by
  several rules keeps its best score.
- Canonical row = highest score, ties broken by smallest record id.

Decrement:
- Stock is validated against the canonical row only.
- The new level (canonical - requested) is written to EVERY matching row.
- stock_level may never go negative after a committed decrement.
- All resolution/validation reads happen before the first write of an attempt;
  the caller's transaction (run_with_retry) repeats the whole attempt on conflict.
- apply_decrement is the only code that writes stock_level.
"""


UNKNOWN_PRODUCT_PREFIX = "unknown_"

PRODUCT_ID_KEYS = ("product_id", "productId", "productID", "id")
QUANTITY_KEYS = ("quantity", "qty", "count")

_LEADING_INT = re.compile(r"\s*[+-]?\d+")


# =============================================================================
# RECORD RESOLUTION
# =============================================================================

class MatchScheme(str, Enum):
    DIRECT_ID = "direct_id"
    PRIMARY_FIELD = "primary_field"
    SECONDARY_FIELD = "secondary_field"
    PRODUCT_REF = "product_ref"


@dataclass(frozen=True)
class MatchRule:
    scheme: MatchScheme
    score: int
    criterion: Callable[[str], Any]


# Highest score first. Structured references rank below plain string ids.
MATCH_RULES: tuple[MatchRule, ...] = (
    MatchRule(MatchScheme.DIRECT_ID, 300, lambda pid: InventoryRecord.id == pid),
    MatchRule(MatchScheme.PRIMARY_FIELD, 220, lambda pid: InventoryRecord.product_id_primary == pid),
    MatchRule(MatchScheme.SECONDARY_FIELD, 210, lambda pid: InventoryRecord.product_id_secondary == pid),
    MatchRule(MatchScheme.PRODUCT_REF, 120, lambda pid: InventoryRecord.product_ref == product_ref_path(pid)),
)


@dataclass
class InventoryMatch:
    record: InventoryRecord
    scheme: MatchScheme
    score: int

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "scheme": self.scheme.value,
            "score": self.score,
        }


@dataclass
class InventoryResolution:
    product_id: str
    canonical: InventoryMatch
    matches: list[InventoryMatch]

    @property
    def canonical_record(self) -> InventoryRecord:
        return self.canonical.record

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "canonical": self.canonical.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
        }


def resolve_inventory_records(product_id: str, *, limit: int | None = None) -> InventoryResolution:
    """
    Find every inventory row that represents `product_id` and pick the canonical one.

    Read-only. Runs on the current session, so inside run_with_retry the reads
    belong to the same transaction attempt as the caller's writes.

    Raises:
        NoInventoryRecordError: no rule matched any row
    """
    pid = str(product_id)
    if limit is None:
        limit = current_app.config.get("INVENTORY_MATCH_LIMIT", 25)

    by_id: dict[str, InventoryMatch] = {}
    for rule in MATCH_RULES:
        query = (
            db.session.query(InventoryRecord)
            .filter(rule.criterion(pid))
            .order_by(InventoryRecord.id)
            .limit(limit)
        )
        for record in query.all():
            existing = by_id.get(record.id)
            if existing is None or rule.score > existing.score:
                by_id[record.id] = InventoryMatch(record=record, scheme=rule.scheme, score=rule.score)

    if not by_id:
        raise NoInventoryRecordError(pid)

    matches = sorted(by_id.values(), key=lambda m: (-m.score, m.record.id))
    return InventoryResolution(product_id=pid, canonical=matches[0], matches=matches)


# =============================================================================
# DECREMENT PLANNING
# =============================================================================

@dataclass(frozen=True)
class CartLineItem:
    product_id: str | None
    quantity: int = 1
    name: str | None = None
    sku: str | None = None
    price: Any = None

    @property
    def is_unmatched(self) -> bool:
        """Scans never resolved to a catalog product do not touch stock."""
        return not self.product_id or self.product_id.startswith(UNKNOWN_PRODUCT_PREFIX)

    @classmethod
    def from_dict(cls, raw: dict) -> "CartLineItem":
        return cls(
            product_id=item_product_id(raw),
            quantity=coerce_quantity(first_present(raw, QUANTITY_KEYS)),
            name=raw.get("name") or raw.get("productName"),
            sku=raw.get("sku") or raw.get("RFID_tag_UID") or raw.get("uid"),
            price=raw.get("price"),
        )


@dataclass(frozen=True)
class ProductAdjustment:
    product_id: str
    quantity: int


@dataclass
class PlannedDecrement:
    product_id: str
    quantity: int
    current_stock: int
    next_stock: int
    resolution: InventoryResolution


@dataclass
class DecrementPlan:
    entries: list[PlannedDecrement]

    @property
    def adjustments(self) -> list[ProductAdjustment]:
        return [ProductAdjustment(e.product_id, e.quantity) for e in self.entries]

    def __bool__(self) -> bool:
        return bool(self.entries)


def first_present(raw: dict, keys: Iterable[str]):
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def item_product_id(raw: Any) -> str | None:
    if not isinstance(raw, dict):
        return None
    pid = first_present(raw, PRODUCT_ID_KEYS)
    if pid is None:
        return None
    pid = str(pid).strip()
    return pid or None


def coerce_quantity(value: Any, fallback: int = 1) -> int:
    """
    Positive integer quantity; anything unusable becomes `fallback`.

    Numbers are floored, strings parsed by their leading integer ("3 pcs" -> 3).
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return fallback
        n = math.floor(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return fallback
        n = int(match.group(0))
    return n if n > 0 else fallback


def aggregate_line_items(items: Iterable[Any]) -> list[ProductAdjustment]:
    """Sum quantities per product id, skipping unmatched scans and non-dict entries."""
    totals: dict[str, int] = {}
    for raw in items or []:
        if not isinstance(raw, dict):
            continue
        item = CartLineItem.from_dict(raw)
        if item.is_unmatched:
            continue
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return [ProductAdjustment(pid, qty) for pid, qty in totals.items()]


def plan_decrement(items: Iterable[Any]) -> DecrementPlan:
    """
    Resolve and validate every product in the cart. Issues no writes.

    Raises:
        NoInventoryRecordError: a product has no inventory row (whole purchase rejected)
        InsufficientStockError: canonical stock is below the requested quantity
    """
    entries: list[PlannedDecrement] = []
    for adjustment in aggregate_line_items(items):
        resolution = resolve_inventory_records(adjustment.product_id)
        current_stock = int(resolution.canonical_record.stock_level or 0)
        next_stock = current_stock - adjustment.quantity
        if next_stock < 0:
            raise InsufficientStockError(
                product_id=adjustment.product_id,
                current_stock=current_stock,
                requested=adjustment.quantity,
            )
        entries.append(PlannedDecrement(
            product_id=adjustment.product_id,
            quantity=adjustment.quantity,
            current_stock=current_stock,
            next_stock=next_stock,
            resolution=resolution,
        ))
    return DecrementPlan(entries=entries)


# =============================================================================
# DECREMENT EXECUTION
# =============================================================================

@dataclass(frozen=True)
class DecrementResult:
    updated_product_count: int
    updated_record_count: int

    def to_dict(self) -> dict:
        return {
            "updated_products": self.updated_product_count,
            "updated_records": self.updated_record_count,
        }


def apply_decrement(plan: DecrementPlan) -> DecrementResult:
    """
    Write the planned stock level to every matching record.

    Must run inside the caller's run_with_retry attempt, after plan_decrement
    and together with the purchase/receipt writes. Flushes so version
    conflicts surface inside the attempt.
    """
    now = utcnow()
    updated_products = 0
    updated_records = 0
    for entry in plan.entries:
        for match in entry.resolution.matches:
            match.record.stock_level = entry.next_stock
            match.record.last_updated = now
            updated_records += 1
        updated_products += 1

    if updated_records:
        db.session.flush()

    return DecrementResult(
        updated_product_count=updated_products,
        updated_record_count=updated_records,
    )


# =============================================================================
# ADMIN / DIAGNOSTICS
# =============================================================================

def create_inventory_record(
    *,
    record_id: str,
    stock_level: int,
    product_id_primary: str | None = None,
    product_id_secondary: str | None = None,
    product_ref: str | None = None,
    product_ref_field: str | None = None,
) -> InventoryRecord:
    """
    Insert an inventory row (tag-linking / seeding tools; tests).

    The regular purchase paths never create inventory rows.
    """
    if stock_level is None or int(stock_level) < 0:
        raise ValueError("stock_level must be a non-negative integer")

    record = InventoryRecord(
        id=str(record_id),
        product_id_primary=product_id_primary,
        product_id_secondary=product_id_secondary,
        product_ref=product_ref,
        product_ref_field=product_ref_field if product_ref else None,
        stock_level=int(stock_level),
        last_updated=utcnow(),
    )
    db.session.add(record)
    db.session.commit()
    return record
