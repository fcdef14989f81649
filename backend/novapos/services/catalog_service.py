# Overview: Service-layer operations for the product catalog; seeding, edits, bulk import and catalog I/O.

"""
Catalog Service

Products own their stock ledger. This module never writes Product.stock
directly: initial stock on create/import goes through append_adjustment()
as a restock entry, so the ledger invariants hold from the first row.

Catalog I/O (export_catalog / restore_catalog) is whole-collection replace:
a restore drops every product and its history and loads the supplied set.
"""

from __future__ import annotations

import csv
import io
import logging

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, StockAdjustment, AdjustmentType
from ..validation import ValidationError, ConflictError, coerce_int, enforce_rules_product, parse_money_to_cents
from novapos.time_utils import parse_iso_datetime, utcnow
from .audit_service import record
from .document_service import next_document_number
from .session_service import SessionContext, system_context
from .settings_service import get_low_stock_threshold
from .stock_ledger_service import append_adjustment, verify_history

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name", "category", "description", "image",
    "barcode", "batch_number", "expiry_date", "price_cents",
}

IMPORT_COLUMNS = ("name", "category", "price", "stock", "description", "image", "barcode", "batch", "expiry")
IMPORT_USER = "System (Bulk Import)"

# Opening menu for a new cafe; prices in cents
DEFAULT_CATALOG = [
    {
        "id": "1", "name": "Classic Espresso", "category": "Coffee", "price_cents": 35000, "stock": 50,
        "description": "Rich and bold single shot espresso.", "barcode": "123456789012",
        "batch_number": "B-2024-001", "expiry_date": "2025-12-31",
    },
    {
        "id": "2", "name": "Organic Matcha", "category": "Tea", "price_cents": 47500, "stock": 12,
        "description": "Premium ceremonial grade matcha.", "barcode": "098765432109",
        "batch_number": "B-2024-042", "expiry_date": "2025-06-15",
    },
    {
        "id": "3", "name": "Blueberry Muffin", "category": "Pastry", "price_cents": 32500, "stock": 5,
        "description": "Freshly baked with wild blueberries.", "barcode": "112233445566",
        "batch_number": "B-2024-099", "expiry_date": "2024-05-20",
    },
    {
        "id": "4", "name": "Avocado Toast", "category": "Food", "price_cents": 120000, "stock": 20,
        "description": "Sourdough bread with smashed avocado and chili flakes.", "barcode": "998877665544",
        "batch_number": "B-2024-105", "expiry_date": "2024-05-18",
    },
]


class CatalogError(Exception):
    """Raised for catalog operation errors."""
    pass


def _allocate_product_id() -> str:
    while True:
        candidate = next_document_number(document_type="PRODUCT", prefix="PROD")
        if db.session.query(Product).filter_by(id=candidate).first() is None:
            return candidate


def _build_product(fields: dict, *, initial_stock: int, user: str, note: str) -> Product:
    """Add a product and its opening restock entry. Flushes only."""
    name = (fields.get("name") or "").strip()
    category = (fields.get("category") or "").strip()
    if not name:
        raise ValidationError("name is required")
    if not category:
        raise ValidationError("category is required")
    enforce_rules_product(fields)
    if initial_stock < 0:
        raise ValidationError("stock must be >= 0")

    product_id = fields.get("id")
    if product_id:
        product_id = str(product_id).strip()
        if db.session.query(Product).filter_by(id=product_id).first():
            raise ConflictError(f"Product id {product_id} already exists")
    else:
        product_id = _allocate_product_id()

    product = Product(
        id=product_id,
        name=name,
        category=category,
        price_cents=fields.get("price_cents") or 0,
        stock=0,
        **{k: fields.get(k) for k in ("description", "image", "barcode", "batch_number", "expiry_date")},
    )
    db.session.add(product)
    db.session.flush()

    if initial_stock > 0:
        append_adjustment(
            product,
            adjustment_type=AdjustmentType.RESTOCK,
            quantity=initial_stock,
            user=user,
            note=note,
        )
    return product


def create_product(patch: dict, *, initial_stock: int = 0, actor: SessionContext | None = None) -> Product:
    actor = actor or system_context()
    try:
        product = _build_product(
            patch,
            initial_stock=initial_stock,
            user=actor.cashier_name,
            note="Initial stock",
        )
        record("Product Created", f"{product.name} ({product.id}) added to catalog", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return product


def update_product(product_id: str, patch: dict, *, actor: SessionContext | None = None) -> Product:
    """
    Edit descriptive fields and price.

    Stock is not editable here; use stock_ledger_service.set_stock so the
    change is recorded in the ledger.
    """
    actor = actor or system_context()
    if "stock" in patch:
        raise ValidationError("stock must be changed through the inventory endpoints")
    enforce_rules_product(patch)

    try:
        product = db.session.query(Product).filter_by(id=product_id).first()
        if not product:
            raise CatalogError("Product not found")

        for k, v in patch.items():
            if k in PRODUCT_MUTABLE_FIELDS:
                if k in ("name", "category") and not (v or "").strip():
                    raise ValidationError(f"{k} cannot be blank")
                setattr(product, k, v)

        record("Product Updated", f"{product.name} ({product.id}) updated", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return product


def delete_product(product_id: str, *, actor: SessionContext | None = None) -> None:
    """Remove a product with its history. Sales keep their line snapshots."""
    actor = actor or system_context()
    try:
        product = db.session.query(Product).filter_by(id=product_id).first()
        if not product:
            raise CatalogError("Product not found")
        name = product.name
        db.session.delete(product)
        record("Product Deleted", f"{name} ({product_id}) removed from catalog", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def get_product(product_id: str) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def list_products(*, category: str | None = None, search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(term), Product.barcode.ilike(term), Product.id == search.strip()))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def low_stock_products(threshold: int | None = None) -> list[Product]:
    """Products with stock below threshold (default: the stored setting)."""
    if threshold is None:
        threshold = get_low_stock_threshold()
    return (
        db.session.query(Product)
        .filter(Product.stock < threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def _parse_import_row(values: list[str]) -> tuple[dict, int]:
    row = dict(zip(IMPORT_COLUMNS, (v.strip() for v in values)))
    price = row.get("price") or "0"
    stock = row.get("stock") or "0"
    fields = {
        "name": row.get("name"),
        "category": row.get("category"),
        "price_cents": parse_money_to_cents("price", price),
        "description": row.get("description") or None,
        "image": row.get("image") or None,
        "barcode": row.get("barcode") or None,
        "batch_number": row.get("batch") or None,
        "expiry_date": row.get("expiry") or None,
    }
    return fields, coerce_int("stock", stock)


def import_products_csv(text: str, *, actor: SessionContext | None = None) -> dict:
    """
    Create products from CSV text.

    The first row is a header and is skipped. Columns, by position:
    name, category, price, stock, description, image, barcode, batch, expiry.
    Rows without a name or category are skipped, as are rows whose numbers
    do not parse. The import is one transaction.
    """
    actor = actor or system_context()
    if not text or not text.strip():
        raise ValidationError("CSV is empty")

    rows = list(csv.reader(io.StringIO(text.strip())))
    created: list[Product] = []
    skipped: list[dict] = []

    try:
        for line_number, values in enumerate(rows[1:], start=2):
            if not values or not any(v.strip() for v in values):
                continue
            if len(values) < 2 or not values[0].strip() or not values[1].strip():
                skipped.append({"row": line_number, "reason": "name and category are required"})
                continue
            try:
                fields, stock = _parse_import_row(values)
                if stock < 0:
                    raise ValidationError("stock must be >= 0")
                enforce_rules_product(fields)
            except ValidationError as e:
                skipped.append({"row": line_number, "reason": str(e)})
                continue

            created.append(_build_product(fields, initial_stock=stock, user=IMPORT_USER, note="Initial import"))

        if created:
            record("Bulk Import", f"Imported {len(created)} products", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("CSV import: %s created, %s skipped", len(created), len(skipped))
    return {"created": created, "skipped": skipped}


def seed_catalog(*, actor: SessionContext | None = None) -> int:
    """Load DEFAULT_CATALOG into an empty catalog. Returns how many were created."""
    actor = actor or system_context()
    if db.session.query(Product).count():
        return 0

    try:
        for item in DEFAULT_CATALOG:
            fields = {k: v for k, v in item.items() if k != "stock"}
            _build_product(fields, initial_stock=item["stock"], user=actor.cashier_name, note="Initial stock")
        record("Catalog Seeded", f"Loaded {len(DEFAULT_CATALOG)} default products", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(DEFAULT_CATALOG)


def export_catalog() -> list[dict]:
    products = db.session.query(Product).order_by(Product.id.asc()).all()
    return [p.to_dict(include_history=True) for p in products]


def _restore_product(data: dict) -> Product:
    product = Product(
        id=str(data["id"]),
        name=data["name"],
        category=data.get("category") or "General",
        price_cents=coerce_int("price_cents", data.get("price_cents", 0)),
        stock=coerce_int("stock", data.get("stock", 0)),
        **{k: data.get(k) for k in ("description", "image", "barcode", "batch_number", "expiry_date")},
    )
    enforce_rules_product({"price_cents": product.price_cents})
    db.session.add(product)

    # Exported history is newest first; re-append oldest first to keep the sequence
    for entry in reversed(data.get("history") or []):
        db.session.add(StockAdjustment(
            product=product,
            type=AdjustmentType(entry["type"]).value,
            quantity=coerce_int("quantity", entry["quantity"]),
            requested_quantity=coerce_int(
                "requested_quantity", entry.get("requested_quantity", entry["quantity"])
            ),
            previous_stock=coerce_int("previous_stock", entry["previous_stock"]),
            new_stock=coerce_int("new_stock", entry["new_stock"]),
            occurred_at=parse_iso_datetime(entry.get("occurred_at")) or utcnow(),
            user=entry.get("user") or "System",
            note=entry.get("note"),
            sale_id=entry.get("sale_id"),
        ))
    return product


def restore_catalog(records: list[dict], *, actor: SessionContext | None = None) -> int:
    """
    Replace the whole catalog with an exported product set.

    Every restored ledger is checked; any inconsistency aborts the restore
    and leaves the current catalog in place.
    """
    actor = actor or system_context()
    if not isinstance(records, list):
        raise ValidationError("Catalog restore expects a list of products")
    ids = [str(r.get("id")) for r in records if isinstance(r, dict)]
    if len(ids) != len(set(ids)):
        raise ValidationError("Duplicate product ids in catalog")

    try:
        for product in db.session.query(Product).all():
            db.session.delete(product)
        db.session.flush()

        restored = []
        for data in records:
            if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
                raise ValidationError("Each product needs an id and a name")
            try:
                restored.append(_restore_product(data))
            except (KeyError, ValueError) as e:
                if isinstance(e, ValidationError):
                    raise
                raise ValidationError(f"Malformed history for product {data.get('id')}: {e}")
        db.session.flush()

        problems = {p.id: verify_history(p) for p in restored}
        problems = {pid: issues for pid, issues in problems.items() if issues}
        if problems:
            raise CatalogError(f"Restored ledger is inconsistent: {problems}")

        record("Catalog Restored", f"Catalog replaced with {len(restored)} products", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(restored)
