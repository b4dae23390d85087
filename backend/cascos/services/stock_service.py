# Overview: Service-layer operations for the stock ledger (quantity on hand per SKU group).

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import StockItem
from ..validation import NotFoundError, PersistenceError, ValidationError, coerce_int, MAX_QUANTITY
from .catalog_service import STOCK_CATALOG, BOTTLE, CRATE, classify
from .concurrency import run_with_retry
"""
Stock ledger invariants:
- One row per catalog SKU group; rows are seeded, never created or destroyed later.
- adjust() is a single atomic "quantity = quantity + delta" UPDATE, so
  concurrent adjustments cannot lose updates.
- adjust() never commits: it joins the caller's unit of work so the stock
  delta and the loan mutation commit (or roll back) together.
- No floor: negative quantity is a visible signal of over-lending.
"""


def seed_stock_items() -> int:
    """Insert missing catalog rows with quantity 0. Idempotent; returns rows created."""
    existing = {row.item_id for row in db.session.query(StockItem.item_id).all()}
    created = 0
    for item_id, display_name in STOCK_CATALOG:
        if item_id in existing:
            continue
        db.session.add(StockItem(item_id=item_id, display_name=display_name, quantity=0))
        created += 1
    if created:
        db.session.commit()
        current_app.logger.info("Seeded %d stock item(s)", created)
    return created


def adjust(item_id: Optional[str], delta: int) -> None:
    """Add delta to an item's quantity. No-op for item_id None or delta 0."""
    if item_id is None or delta == 0:
        return

    result = db.session.execute(
        update(StockItem)
        .where(StockItem.item_id == item_id)
        .values({StockItem.quantity: StockItem.quantity + delta})
    )
    if not result.rowcount:
        # Classifier only yields catalog ids, so this means the table was never seeded
        raise PersistenceError(f"stock item {item_id!r} is missing; run `flask system init`")


def credit_pending(loan) -> dict[str, int]:
    """
    Return a loan's unreturned quantities to stock (delete paths).

    Uses the brand/type stored on the row. Returns {item_id: credited} for
    the buckets actually touched.
    """
    credited: dict[str, int] = {}
    for category, label, pending in (
        (BOTTLE, loan.casco_brand, loan.pending_casco),
        (CRATE, loan.caixa_type, loan.pending_caixa),
    ):
        if pending <= 0:
            continue
        item_id = classify(category, label)
        if item_id is None:
            continue
        adjust(item_id, pending)
        credited[item_id] = credited.get(item_id, 0) + pending
    return credited


def get_stock_item(item_id: str) -> StockItem:
    item = db.session.get(StockItem, item_id)
    if item is None:
        raise NotFoundError(f"stock item {item_id!r} not found")
    return item


def get_quantity(item_id: str) -> int:
    return get_stock_item(item_id).quantity


def set_absolute(item_id: str, quantity) -> StockItem:
    """Administrative correction: overwrite the stored quantity unconditionally."""
    qty = coerce_int("quantity", quantity)
    if abs(qty) > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY} in magnitude")

    def _op():
        item = get_stock_item(item_id)
        previous = item.quantity
        item.quantity = qty
        db.session.commit()
        current_app.logger.info("Stock %s set to %d (was %d)", item_id, qty, previous)
        return item

    return run_with_retry(_op)


def list_all() -> list[StockItem]:
    """Every stock row, zero-quantity ones included, in catalog order."""
    order = {item_id: idx for idx, (item_id, _) in enumerate(STOCK_CATALOG)}
    rows = db.session.query(StockItem).all()
    return sorted(rows, key=lambda r: (order.get(r.item_id, len(order)), r.item_id))
