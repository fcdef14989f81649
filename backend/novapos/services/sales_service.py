"""
Sales Service - cart settlement and sale status transitions

WHY: Completing a sale has to move three stores together: the sale document
(with snapshot lines), the stock ledger of every product sold, and the audit
trail. Doing it in one service call keeps them consistent.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import Sale, SaleLine, Product, AdjustmentType, PaymentMethod, SaleStatus
from novapos.time_utils import utcnow
from .audit_service import record
from .auth_service import is_manager_pin
from .document_service import next_document_number
from .session_service import SessionContext
from .stock_ledger_service import append_adjustment

logger = logging.getLogger(__name__)

BPS_PER_PERCENT = 100
MAX_DISCOUNT_BPS = 10_000  # 100%
MAX_TAX_BPS = 10_000  # 100%

# Labels the till has used for the same tender
PAYMENT_METHOD_ALIASES = {
    "M-Pesa": PaymentMethod.MOBILE_MONEY,
    "Mobile Money": PaymentMethod.MOBILE_MONEY,
}

ALLOWED_TRANSITIONS = {
    SaleStatus.COMPLETED: {SaleStatus.VOIDED, SaleStatus.REFUNDED},
    SaleStatus.VOIDED: set(),
    SaleStatus.REFUNDED: set(),
}


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class CartLine:
    """
    One line of a cart as submitted for settlement.

    unit_price_cents and name default to the product's current values.
    """
    product_id: str
    quantity: int
    unit_price_cents: int | None = None
    name: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            product_id=data.get("product_id") or data.get("id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class LineSnapshot:
    product_id: str
    name: str
    unit_price_cents: int
    quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    tax_rate_bps: int
    discount_rate_bps: int

    @property
    def taxable_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half up, for non-negative operands."""
    return (2 * numerator + denominator) // (2 * denominator)


def normalize_rate_bps(rate_percent, *, cap_bps: int = MAX_TAX_BPS) -> int:
    """
    Convert a percentage to basis points, clamped to [0, cap_bps].

    Non-numeric, NaN, infinite and negative rates become 0. Rates above the
    cap (including ones too large to quantize) become cap_bps.
    """
    if rate_percent is None or isinstance(rate_percent, bool):
        return 0
    if isinstance(rate_percent, float) and not math.isfinite(rate_percent):
        return 0
    try:
        value = Decimal(str(rate_percent).strip())
    except InvalidOperation:
        return 0
    if not value.is_finite() or value <= 0:
        return 0

    if value * BPS_PER_PERCENT >= cap_bps:
        return cap_bps
    try:
        bps = int((value * BPS_PER_PERCENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return cap_bps
    return min(bps, cap_bps)


def compute_totals(lines, tax_rate_percent=0, discount_rate_percent=0) -> SaleTotals:
    """
    Price a cart. Pure: reads nothing, writes nothing.

    lines: items exposing unit_price_cents and quantity.
    Discount applies to the subtotal, tax to what remains after discount.
    """
    tax_bps = normalize_rate_bps(tax_rate_percent, cap_bps=MAX_TAX_BPS)
    discount_bps = normalize_rate_bps(discount_rate_percent, cap_bps=MAX_DISCOUNT_BPS)

    subtotal = sum(line.unit_price_cents * line.quantity for line in lines)
    discount = round_half_up(subtotal * discount_bps, 10_000)
    taxable = subtotal - discount
    tax = round_half_up(taxable * tax_bps, 10_000)

    return SaleTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        total_cents=taxable + tax,
        tax_rate_bps=tax_bps,
        discount_rate_bps=discount_bps,
    )


def parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    if value in PAYMENT_METHOD_ALIASES:
        return PAYMENT_METHOD_ALIASES[value]
    try:
        return PaymentMethod(value)
    except ValueError:
        raise SaleError(
            "Invalid payment method",
            details={"payment_method": value, "allowed": [m.value for m in PaymentMethod]},
        )


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _snapshot_cart(cart) -> tuple[list[LineSnapshot], dict[str, Product]]:
    """Validate the cart and resolve products. Mutates nothing."""
    if not cart:
        raise SaleError("Cart is empty")

    invalid = []
    for index, line in enumerate(cart):
        if not line.product_id:
            invalid.append({"line": index + 1, "reason": "product_id required"})
        elif not _is_positive_int(line.quantity):
            invalid.append({"line": index + 1, "reason": "quantity must be an integer >= 1"})
        elif line.unit_price_cents is not None and (
            not isinstance(line.unit_price_cents, int)
            or isinstance(line.unit_price_cents, bool)
            or line.unit_price_cents < 0
        ):
            invalid.append({"line": index + 1, "reason": "unit_price_cents must be a non-negative integer"})
    if invalid:
        raise SaleError("Invalid cart lines", details={"lines": invalid})

    product_ids = {line.product_id for line in cart}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    missing = sorted(product_ids - set(products))
    if missing:
        raise SaleError("Product not found", details={"product_ids": missing})

    snapshots = []
    for line in cart:
        product = products[line.product_id]
        snapshots.append(LineSnapshot(
            product_id=product.id,
            name=line.name or product.name,
            unit_price_cents=(
                line.unit_price_cents if line.unit_price_cents is not None else product.price_cents
            ),
            quantity=line.quantity,
        ))
    return snapshots, products


def settle_sale(
    cart,
    *,
    payment_method,
    tax_rate_percent=None,
    discount_rate_percent=0,
    actor: SessionContext,
) -> Sale:
    """
    Settle a cart into a completed Sale.

    Everything is validated before the first row is written; a refused cart
    leaves the database untouched. On success there is one sale, one ledger
    entry per cart line, one "Sale Completed" audit entry, and one commit.
    """
    if actor is None or not actor.cashier_name:
        raise SaleError("Attribution context required")

    method = parse_payment_method(payment_method)
    if tax_rate_percent is None:
        tax_rate_percent = current_app.config.get("DEFAULT_TAX_RATE_PERCENT", 0)

    snapshots, products = _snapshot_cart(cart)
    totals = compute_totals(snapshots, tax_rate_percent, discount_rate_percent)

    try:
        document_number = next_document_number(document_type="SALE", prefix="SALE", pad=6)
        branch_label = actor.branch_name or "Unknown Branch"

        sale = Sale(
            document_number=document_number,
            status=SaleStatus.COMPLETED.value,
            payment_method=method.value,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            tax_rate_bps=totals.tax_rate_bps,
            discount_rate_bps=totals.discount_rate_bps,
            branch_id=actor.branch_id,
            branch_name=actor.branch_name,
            cashier_name=actor.cashier_name,
            created_at=utcnow(),
        )
        db.session.add(sale)

        for line_number, snap in enumerate(snapshots, start=1):
            sale.lines.append(SaleLine(
                line_number=line_number,
                product_id=snap.product_id,
                name=snap.name,
                unit_price_cents=snap.unit_price_cents,
                quantity=snap.quantity,
                line_total_cents=snap.line_total_cents,
            ))
            append_adjustment(
                products[snap.product_id],
                adjustment_type=AdjustmentType.SALE,
                quantity=-snap.quantity,
                user=actor.cashier_name,
                note=f"Order {document_number} ({branch_label})",
                sale_id=document_number,
            )

        record(
            "Sale Completed",
            f"Order {document_number} at {branch_label}",
            **actor.audit_kwargs(),
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Settled sale %s: %s line(s), total_cents=%s, method=%s, branch=%s",
        sale.document_number, len(snapshots), sale.total_cents, sale.payment_method, sale.branch_id,
    )
    return sale


def _find_sale(sale_ref) -> Sale | None:
    if isinstance(sale_ref, int) and not isinstance(sale_ref, bool):
        return db.session.query(Sale).filter_by(id=sale_ref).first()
    return db.session.query(Sale).filter_by(document_number=str(sale_ref)).first()


def update_sale_status(sale_ref, new_status, *, pin, actor: SessionContext) -> bool:
    """
    Move a completed sale to voided or refunded.

    Returns True when the status changed. A disallowed transition or a PIN
    that is not a manager PIN is a no-op returning False and is not audited.
    Stock sold on the sale is not returned to inventory.
    """
    sale = _find_sale(sale_ref)
    if sale is None:
        raise SaleError("Sale not found")

    try:
        target = SaleStatus(new_status)
    except ValueError:
        raise SaleError("Invalid status", details={"status": new_status})

    current = SaleStatus(sale.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        logger.info("Ignored status change %s -> %s on sale %s", current.value, target.value, sale.document_number)
        return False

    if not is_manager_pin(pin):
        logger.warning(
            "Manager PIN rejected for %s on sale %s (requested by %s)",
            target.value, sale.document_number, actor.cashier_name if actor else None,
        )
        return False

    try:
        sale.status = target.value
        sale.status_changed_by = actor.cashier_name
        sale.status_changed_at = utcnow()
        record(
            f"Order {target.value.upper()}",
            f"Order ID: {sale.document_number}",
            **actor.audit_kwargs(),
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Sale %s %s by %s", sale.document_number, target.value, actor.cashier_name)
    return True


def get_sale(sale_ref) -> Sale | None:
    return _find_sale(sale_ref)


def list_sales(
    *,
    branch_id: str | None = None,
    status: str | None = None,
    limit: int = 200,
) -> list[Sale]:
    q = db.session.query(Sale)
    if branch_id:
        q = q.filter(Sale.branch_id == branch_id)
    if status:
        q = q.filter(Sale.status == status)
    return q.order_by(Sale.id.desc()).limit(limit).all()
