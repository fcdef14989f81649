from __future__ import annotations

from enum import Enum

from ..extensions import db
from novapos.time_utils import to_utc_z, utcnow


class PaymentMethod(str, Enum):
    CASH = "Cash"
    MOBILE_MONEY = "Mobile-Money"
    CARD = "Card"


class SaleStatus(str, Enum):
    """
    completed is the only entry state; voided and refunded are terminal.
    """
    COMPLETED = "completed"
    VOIDED = "voided"
    REFUNDED = "refunded"


class Sale(db.Model):
    """
    Settled sale.

    Totals are stored in cents and always satisfy
    total_cents == subtotal_cents - discount_cents + tax_cents.

    Attribution (branch, cashier) is fixed at settlement. The only later
    mutation is the single status transition out of completed.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        db.CheckConstraint(
            "total_cents = subtotal_cents - discount_cents + tax_cents",
            name="ck_sales_total_identity",
        ),
        db.CheckConstraint("discount_cents >= 0 AND discount_cents <= subtotal_cents", name="ck_sales_discount_range"),
        db.CheckConstraint("tax_cents >= 0", name="ck_sales_tax_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "SALE-000042")
    document_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SaleStatus.COMPLETED.value, index=True)
    payment_method = db.Column(db.String(32), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # Effective rates in basis points (800 = 8%)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    branch_id = db.Column(db.String(64), nullable=True, index=True)
    branch_name = db.Column(db.String(255), nullable=True)
    cashier_name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    status_changed_by = db.Column(db.String(255), nullable=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Sale {self.document_number} status={self.status} total_cents={self.total_cents}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        d = {
            "id": self.id,
            "document_number": self.document_number,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "discount_rate_bps": self.discount_rate_bps,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "cashier_name": self.cashier_name,
            "created_at": to_utc_z(self.created_at),
            "status_changed_by": self.status_changed_by,
            "status_changed_at": to_utc_z(self.status_changed_at) if self.status_changed_at else None,
        }
        if include_lines:
            d["items"] = [line.to_dict() for line in self.lines]
        return d


class SaleLine(db.Model):
    """
    Snapshot of a product at the moment of sale.

    product_id is a plain value, not a foreign key: later edits or deletion
    of the product never reach back into historical sales.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line_number"),
        db.CheckConstraint("quantity >= 1", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }
