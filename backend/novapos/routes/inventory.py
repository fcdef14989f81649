# backend/novapos/routes/inventory.py
"""
Stock ledger routes.

Every stock change is an append to the product's ledger; there is no
route that writes Product.stock directly.

SECURITY: Admin and Manager only, as with the inventory screen.
"""
from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..models import Product
from ..services import stock_ledger_service, catalog_service, settings_service
from ..services.settings_service import SettingsError
from ..services.stock_ledger_service import StockLedgerError
from ..validation import coerce_int, ValidationError
from ..decorators import require_operator, require_role, MANAGER_ROLES

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _ledger_error(e: StockLedgerError):
    status = 404 if str(e) == "Product not found" else 400
    return jsonify({"error": str(e)}), status


@inventory_bp.get("/<product_id>/history")
@require_operator
@require_role(*MANAGER_ROLES)
def history_route(product_id: str):
    limit = request.args.get("limit", default=200, type=int)
    try:
        entries = stock_ledger_service.get_history(product_id, limit=max(1, min(limit, 1000)))
    except StockLedgerError as e:
        return _ledger_error(e)
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})


@inventory_bp.post("/<product_id>/stock")
@require_operator
@require_role(*MANAGER_ROLES)
def set_stock_route(product_id: str):
    """
    Set stock to an absolute level: {"stock": 40, "note": "..."}.

    Increases are recorded as restock, decreases as correction.
    """
    payload = request.get_json(silent=True) or {}
    try:
        new_stock = coerce_int("stock", payload.get("stock"))
        adj = stock_ledger_service.set_stock(
            product_id, new_stock, note=payload.get("note"), actor=g.session_context,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockLedgerError as e:
        return _ledger_error(e)

    product = db.session.get(Product, product_id)
    return jsonify({
        "adjustment": adj.to_dict() if adj else None,
        "product": product.to_dict(),
    })


@inventory_bp.post("/<product_id>/restock")
@require_operator
@require_role(*MANAGER_ROLES)
def restock_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        quantity = coerce_int("quantity", payload.get("quantity"))
        adj = stock_ledger_service.restock(
            product_id, quantity, note=payload.get("note"), actor=g.session_context,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockLedgerError as e:
        return _ledger_error(e)
    return jsonify({"adjustment": adj.to_dict()}), 201


@inventory_bp.post("/<product_id>/waste")
@require_operator
@require_role(*MANAGER_ROLES)
def waste_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        quantity = coerce_int("quantity", payload.get("quantity"))
        adj = stock_ledger_service.record_waste(
            product_id, quantity, note=payload.get("note"), actor=g.session_context,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockLedgerError as e:
        return _ledger_error(e)
    return jsonify({"adjustment": adj.to_dict()}), 201


@inventory_bp.get("/low-stock")
@require_operator
def low_stock_route():
    threshold = request.args.get("threshold", type=int)
    if threshold is None:
        threshold = settings_service.get_low_stock_threshold()
    products = catalog_service.low_stock_products(threshold)
    return jsonify({
        "threshold": threshold,
        "items": [p.to_dict() for p in products],
        "count": len(products),
    })


@inventory_bp.get("/low-stock-threshold")
@require_operator
def get_threshold_route():
    return jsonify({"threshold": settings_service.get_low_stock_threshold()})


@inventory_bp.put("/low-stock-threshold")
@require_operator
@require_role(*MANAGER_ROLES)
def set_threshold_route():
    """Body: {"threshold": 5}. Stored; overrides config LOW_STOCK_THRESHOLD."""
    payload = request.get_json(silent=True) or {}
    try:
        threshold = settings_service.set_low_stock_threshold(payload.get("threshold"), actor=g.session_context)
    except SettingsError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"threshold": threshold})


@inventory_bp.get("/verify")
@require_operator
@require_role(*MANAGER_ROLES)
def verify_route():
    """Check every product's ledger; 200 with an empty problems map when consistent."""
    problems = {}
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        issues = stock_ledger_service.verify_history(product)
        if issues:
            problems[product.id] = issues
    return jsonify({"ok": not problems, "problems": problems})
