# Overview: Service-layer operations for the per-product stock ledger; encapsulates stock mutations.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product, StockAdjustment, AdjustmentType
from novapos.time_utils import utcnow
from .audit_service import record
from .session_service import SessionContext, system_context
"""
NovaPOS Stock Ledger Invariants (authoritative)

Stock model:
- Product.stock is authoritative and is ONLY changed by append_adjustment().
- Each append records previous_stock, the applied delta and new_stock, with
  new_stock = previous_stock + quantity and new_stock >= 0.
- History is newest first (by append sequence) and never rewritten.
- Therefore product.stock == history[0].new_stock, and for adjacent entries
  older.new_stock == newer.previous_stock.

Underflow policy (floor clamping):
- A decrement larger than the stock on hand is NOT rejected. It is clamped
  so new_stock = max(0, previous_stock + requested). The entry stores the
  applied delta in quantity and the caller's delta in requested_quantity.
- This mirrors how the till has always behaved (overselling never blocks a
  sale). It is an explicit policy branch, logged at WARNING.

Transactions:
- append_adjustment() flushes only. The public wrappers below (set_stock,
  restock, record_waste) commit their own unit of work; settlement commits
  once for all of its lines.
"""

logger = logging.getLogger(__name__)


class StockLedgerError(Exception):
    """Raised for invalid stock ledger operations."""
    pass


def _coerce_quantity(value) -> int:
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(value, bool) or not isinstance(value, int):
        raise StockLedgerError("quantity must be an integer")
    return value


def _coerce_type(adjustment_type) -> AdjustmentType:
    try:
        return AdjustmentType(adjustment_type)
    except ValueError:
        raise StockLedgerError(f"Unknown adjustment type: {adjustment_type}")


def _get_product(product_id: str) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise StockLedgerError("Product not found")
    return product


def append_adjustment(
    product: Product,
    *,
    adjustment_type,
    quantity: int,
    user: str | None = None,
    note: str | None = None,
    sale_id: str | None = None,
) -> StockAdjustment:
    """
    Append one entry to the product's ledger and move product.stock with it.

    - quantity: requested non-zero delta (negative for sale/waste).
    - Decrements past zero are floor-clamped (see module invariants).
    - Flushes; the caller commits.
    """
    adj_type = _coerce_type(adjustment_type)
    requested = _coerce_quantity(quantity)
    if requested == 0:
        raise StockLedgerError("quantity must be non-zero")
    if adj_type in (AdjustmentType.SALE, AdjustmentType.WASTE) and requested > 0:
        raise StockLedgerError(f"{adj_type.value} adjustments must decrease stock")
    if adj_type == AdjustmentType.RESTOCK and requested < 0:
        raise StockLedgerError("restock adjustments must increase stock")

    previous_stock = product.stock or 0
    new_stock = max(0, previous_stock + requested)
    applied = new_stock - previous_stock

    if applied != requested:
        logger.warning(
            "Clamped %s on product %s: requested %s, applied %s (stock %s -> 0)",
            adj_type.value, product.id, requested, applied, previous_stock,
        )

    adj = StockAdjustment(
        type=adj_type.value,
        quantity=applied,
        requested_quantity=requested,
        previous_stock=previous_stock,
        new_stock=new_stock,
        occurred_at=utcnow(),
        user=user or "System",
        note=note,
        sale_id=sale_id,
    )
    # Front of the loaded collection keeps the in-session view newest first
    product.history.insert(0, adj)
    product.stock = new_stock

    db.session.flush()
    return adj


def set_stock(
    product_id: str,
    new_stock: int,
    *,
    note: str | None = None,
    actor: SessionContext | None = None,
) -> StockAdjustment | None:
    """
    Manual stock edit: move stock to an absolute level.

    An increase is recorded as a restock, a decrease as a correction.
    Returns None (and records nothing) when the level is unchanged.
    """
    actor = actor or system_context()
    target = _coerce_quantity(new_stock)
    if target < 0:
        raise StockLedgerError("stock cannot be negative")

    try:
        product = _get_product(product_id)
        delta = target - product.stock
        if delta == 0:
            db.session.rollback()
            return None

        adj = append_adjustment(
            product,
            adjustment_type=AdjustmentType.RESTOCK if delta > 0 else AdjustmentType.CORRECTION,
            quantity=delta,
            user=actor.cashier_name,
            note=note or "Manual inventory update",
        )
        record(
            "Stock Adjusted",
            f"{product.name}: {adj.previous_stock} -> {adj.new_stock} ({adj.type})",
            **actor.audit_kwargs(),
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return adj


def restock(
    product_id: str,
    quantity: int,
    *,
    note: str | None = None,
    actor: SessionContext | None = None,
) -> StockAdjustment:
    actor = actor or system_context()
    qty = _coerce_quantity(quantity)
    if qty <= 0:
        raise StockLedgerError("restock quantity must be positive")

    try:
        product = _get_product(product_id)
        adj = append_adjustment(
            product,
            adjustment_type=AdjustmentType.RESTOCK,
            quantity=qty,
            user=actor.cashier_name,
            note=note or "Restock",
        )
        record("Stock Restocked", f"{product.name}: +{qty} (now {adj.new_stock})", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return adj


def record_waste(
    product_id: str,
    quantity: int,
    *,
    note: str | None = None,
    actor: SessionContext | None = None,
) -> StockAdjustment:
    """Write off spoiled or damaged units. quantity is the positive count wasted."""
    actor = actor or system_context()
    qty = _coerce_quantity(quantity)
    if qty <= 0:
        raise StockLedgerError("waste quantity must be positive")

    try:
        product = _get_product(product_id)
        adj = append_adjustment(
            product,
            adjustment_type=AdjustmentType.WASTE,
            quantity=-qty,
            user=actor.cashier_name,
            note=note or "Waste",
        )
        record("Stock Wasted", f"{product.name}: {adj.quantity} (now {adj.new_stock})", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return adj


def get_history(product_id: str, *, limit: int = 200) -> list[StockAdjustment]:
    _get_product(product_id)
    return (
        db.session.query(StockAdjustment)
        .filter_by(product_id=product_id)
        .order_by(StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )


def verify_history(product: Product) -> list[str]:
    """
    Check a product's ledger against the stock invariants.

    Returns human-readable violations; an empty list means consistent.
    """
    problems = []
    entries = (
        db.session.query(StockAdjustment)
        .filter_by(product_id=product.id)
        .order_by(StockAdjustment.id.desc())
        .all()
    )

    if product.stock < 0:
        problems.append(f"stock is negative ({product.stock})")

    if entries and product.stock != entries[0].new_stock:
        problems.append(
            f"stock {product.stock} != newest entry new_stock {entries[0].new_stock}"
        )

    for entry in entries:
        if entry.new_stock != entry.previous_stock + entry.quantity:
            problems.append(f"entry {entry.id}: new_stock != previous_stock + quantity")
        if entry.new_stock < 0:
            problems.append(f"entry {entry.id}: new_stock is negative")

    for newer, older in zip(entries, entries[1:]):
        if older.new_stock != newer.previous_stock:
            problems.append(
                f"entries {older.id} -> {newer.id}: chain broken "
                f"({older.new_stock} != {newer.previous_stock})"
            )
        if older.occurred_at and newer.occurred_at and newer.occurred_at < older.occurred_at:
            problems.append(f"entries {older.id} -> {newer.id}: timestamps out of order")

    return problems
