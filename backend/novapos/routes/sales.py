# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes: settlement and status transitions."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import CartLine, SaleError
from ..services.stock_ledger_service import StockLedgerError
from ..decorators import require_operator


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_operator
def settle_sale_route():
    """
    Settle a cart.

    Body:
    {
      "items": [{"product_id": "1", "quantity": 2}],
      "payment_method": "Cash",
      "tax_rate_percent": 8,          (optional, config default)
      "discount_rate_percent": 10     (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list):
        return jsonify({"error": "items must be a list"}), 400
    if not all(isinstance(item, dict) for item in items):
        return jsonify({"error": "each item must be an object"}), 400

    try:
        sale = sales_service.settle_sale(
            [CartLine.from_dict(item) for item in items],
            payment_method=data.get("payment_method"),
            tax_rate_percent=data.get("tax_rate_percent"),
            discount_rate_percent=data.get("discount_rate_percent", 0),
            actor=g.session_context,
        )
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except StockLedgerError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("")
@require_operator
def list_sales_route():
    """
    Query params:
    - branch_id: defaults to the operator's branch; "all" for every branch
    - status: completed | voided | refunded
    - limit: max rows (default 200)
    """
    branch_id = request.args.get("branch_id") or g.session_context.branch_id
    if branch_id == "all":
        branch_id = None
    limit = request.args.get("limit", default=200, type=int)
    sales = sales_service.list_sales(
        branch_id=branch_id,
        status=request.args.get("status"),
        limit=max(1, min(limit, 1000)),
    )
    return jsonify({"items": [s.to_dict(include_lines=False) for s in sales], "count": len(sales)})


@sales_bp.get("/<int:sale_id>")
@require_operator
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict()})


@sales_bp.post("/<int:sale_id>/status")
@require_operator
def update_status_route(sale_id: int):
    """
    Void or refund a completed sale.

    Body: {"status": "voided" | "refunded", "pin": "1234"}
    The PIN must belong to a Manager or Admin. A rejected PIN or disallowed
    transition answers 403 with updated=false and leaves the sale as is.
    """
    data = request.get_json(silent=True) or {}
    try:
        updated = sales_service.update_sale_status(
            sale_id,
            data.get("status"),
            pin=data.get("pin"),
            actor=g.session_context,
        )
    except SaleError as e:
        status = 404 if str(e) == "Sale not found" else 400
        return jsonify({"error": str(e), "details": e.details}), status
    except Exception:
        current_app.logger.exception("Failed to update sale status")
        return jsonify({"error": "Internal server error"}), 500

    sale = sales_service.get_sale(sale_id)
    return jsonify({"updated": updated, "sale": sale.to_dict()}), (200 if updated else 403)
