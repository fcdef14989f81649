# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

"""
Product catalog routes.

Reads are open to any attributed operator. Writes (create, edit, delete,
import, restore) require an Admin or Manager.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Product
from ..services import catalog_service
from ..services.catalog_service import CatalogError
from ..validation import (
    PRODUCT_POLICY,
    validate_payload,
    coerce_int,
    ValidationError,
    ConflictError,
)
from ..decorators import require_operator, require_role, MANAGER_ROLES

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_operator
def list_products():
    """
    Query params:
    - category: exact category filter
    - q: name/barcode substring or exact id
    """
    products = catalog_service.list_products(
        category=request.args.get("category"),
        search=request.args.get("q"),
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.post("")
@require_operator
@require_role(*MANAGER_ROLES)
def create_product_route():
    payload = dict(request.get_json(silent=True) or {})
    try:
        initial_stock = coerce_int("stock", payload.pop("stock", 0))
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(patch, initial_stock=initial_stock, actor=g.session_context)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify({"product": product.to_dict(include_history=True)}), 201


@products_bp.get("/<product_id>")
@require_operator
def get_product_route(product_id: str):
    product = catalog_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    include_history = request.args.get("history", "false").lower() == "true"
    return jsonify({"product": product.to_dict(include_history=include_history)})


@products_bp.patch("/<product_id>")
@require_operator
@require_role(*MANAGER_ROLES)
def update_product_route(product_id: str):
    payload = dict(request.get_json(silent=True) or {})
    if "stock" in payload:
        return jsonify({"error": "stock must be changed through /api/inventory"}), 400
    payload.pop("id", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(product_id, patch, actor=g.session_context)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CatalogError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"product": product.to_dict()})


@products_bp.delete("/<product_id>")
@require_operator
@require_role(*MANAGER_ROLES)
def delete_product_route(product_id: str):
    try:
        catalog_service.delete_product(product_id, actor=g.session_context)
    except CatalogError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True})


@products_bp.post("/import")
@require_operator
@require_role(*MANAGER_ROLES)
def import_products_route():
    """
    Bulk import from CSV.

    Accepts text/csv as the raw body or a multipart upload under "file".
    """
    upload = request.files.get("file")
    text = upload.read().decode("utf-8-sig") if upload else request.get_data(as_text=True)

    try:
        result = catalog_service.import_products_csv(text, actor=g.session_context)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "created": [p.to_dict() for p in result["created"]],
        "skipped": result["skipped"],
    }), 201


@products_bp.get("/export")
@require_operator
def export_catalog_route():
    return jsonify({"products": catalog_service.export_catalog()})


@products_bp.put("/export")
@require_operator
@require_role(*MANAGER_ROLES)
def restore_catalog_route():
    payload = request.get_json(silent=True) or {}
    records = payload.get("products") if isinstance(payload, dict) else payload
    try:
        count = catalog_service.restore_catalog(records, actor=g.session_context)
    except (ValidationError, CatalogError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"restored": count})
