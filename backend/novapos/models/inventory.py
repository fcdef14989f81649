from __future__ import annotations

from enum import Enum

from ..extensions import db
from novapos.time_utils import to_utc_z, utcnow


class AdjustmentType(str, Enum):
    """Every way a product's stock level may change."""
    SALE = "sale"
    RESTOCK = "restock"
    CORRECTION = "correction"
    WASTE = "waste"


class Product(db.Model):
    """
    Catalog product with its authoritative stock level.

    STOCK MODEL:
    - stock is the stored, authoritative quantity on hand.
    - Every change to stock goes through the stock ledger, which appends a
      StockAdjustment and sets stock to that entry's new_stock.
    - stock always equals history[0].new_stock when history is non-empty.

    The id is opaque and stable for the product's lifetime; sales copy
    product fields into their own lines and never point back here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
    )

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=False, default="General")
    description = db.Column(db.Text, nullable=True)
    image = db.Column(db.String(512), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.String(32), nullable=True)  # ISO date, as entered

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Newest first; deleting a product removes its history
    history = db.relationship(
        "StockAdjustment",
        back_populates="product",
        order_by="StockAdjustment.id.desc()",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self, include_history: bool = False) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "image": self.image,
            "barcode": self.barcode,
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_history:
            d["history"] = [adj.to_dict() for adj in self.history]
        return d


class StockAdjustment(db.Model):
    """
    One append-only entry in a product's stock ledger.

    IMMUTABLE: rows are never updated or reordered after insertion.
    The autoincrement id doubles as the append sequence.

    quantity is the delta actually applied (new_stock - previous_stock).
    requested_quantity is what the caller asked for; the two differ only
    when a decrement was floor-clamped at zero.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adj_product_id_desc", "product_id", "id"),
        db.CheckConstraint("new_stock >= 0", name="ck_stock_adj_new_stock_non_negative"),
        db.CheckConstraint("new_stock = previous_stock + quantity", name="ck_stock_adj_delta_chain"),
        db.CheckConstraint(
            "type IN ('sale', 'restock', 'correction', 'waste')",
            name="ck_stock_adj_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.String(64),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    requested_quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user = db.Column(db.String(255), nullable=False, default="System")
    note = db.Column(db.String(255), nullable=True)

    # Document number of the sale that caused a type=sale entry
    sale_id = db.Column(db.String(64), nullable=True, index=True)

    product = db.relationship("Product", back_populates="history")

    @property
    def was_clamped(self) -> bool:
        return self.quantity != self.requested_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "requested_quantity": self.requested_quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "occurred_at": to_utc_z(self.occurred_at),
            "user": self.user,
            "note": self.note,
            "sale_id": self.sale_id,
        }
