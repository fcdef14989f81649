# Overview: Flask API routes for accounting; expenses and the income/expense summary.

from flask import Blueprint, request, jsonify, g

from novapos.time_utils import parse_iso_datetime
from ..services import accounting_service
from ..services.accounting_service import AccountingError
from ..validation import parse_money_to_cents, ValidationError
from ..decorators import require_operator, require_role, MANAGER_ROLES

accounting_bp = Blueprint("accounting", __name__, url_prefix="/api")


def _window():
    """start/end query params, ISO-8601; a bare end date covers that whole day."""
    return (
        parse_iso_datetime(request.args.get("start")),
        parse_iso_datetime(request.args.get("end"), end_of_day=True),
    )


def _branch_scope() -> str | None:
    branch_id = request.args.get("branch_id") or g.session_context.branch_id
    return None if branch_id == "all" else branch_id


@accounting_bp.get("/expenses")
@require_operator
@require_role(*MANAGER_ROLES)
def list_expenses_route():
    try:
        start, end = _window()
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    expenses = accounting_service.list_expenses(
        branch_id=_branch_scope(),
        category=request.args.get("category"),
        start=start,
        end=end,
    )
    return jsonify({
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "categories": accounting_service.list_expense_categories(),
    })


@accounting_bp.get("/expense-categories")
@require_operator
@require_role(*MANAGER_ROLES)
def list_categories_route():
    return jsonify({"items": accounting_service.list_expense_categories()})


@accounting_bp.post("/expense-categories")
@require_operator
@require_role(*MANAGER_ROLES)
def add_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        category = accounting_service.add_expense_category(payload.get("name"), actor=g.session_context)
    except AccountingError as e:
        status = 409 if str(e) == "Category already exists" else 400
        return jsonify({"error": str(e)}), status
    return jsonify({"category": category.to_dict()}), 201


@accounting_bp.delete("/expense-categories/<name>")
@require_operator
@require_role(*MANAGER_ROLES)
def remove_category_route(name: str):
    try:
        accounting_service.remove_expense_category(name, actor=g.session_context)
    except AccountingError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True})


@accounting_bp.post("/expenses")
@require_operator
@require_role(*MANAGER_ROLES)
def record_expense_route():
    """
    Body: {"description": "...", "category": "Rent", "amount": "1500.00"}
    amount is in major units; amount_cents may be sent instead.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("amount_cents") is not None:
            amount_cents = payload["amount_cents"]
        else:
            amount_cents = parse_money_to_cents("amount", payload.get("amount"))
        expense = accounting_service.record_expense(
            payload.get("description"),
            category=payload.get("category") or "Other",
            amount_cents=amount_cents,
            branch_id=payload.get("branch_id"),
            actor=g.session_context,
        )
    except (ValidationError, AccountingError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"expense": expense.to_dict()}), 201


@accounting_bp.delete("/expenses/<int:expense_id>")
@require_operator
@require_role(*MANAGER_ROLES)
def delete_expense_route(expense_id: int):
    try:
        accounting_service.delete_expense(expense_id, actor=g.session_context)
    except AccountingError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True})


@accounting_bp.get("/accounting/summary")
@require_operator
@require_role(*MANAGER_ROLES)
def summary_route():
    try:
        start, end = _window()
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    return jsonify(accounting_service.financial_summary(branch_id=_branch_scope(), start=start, end=end))


@accounting_bp.get("/accounting/ledger")
@require_operator
@require_role(*MANAGER_ROLES)
def ledger_route():
    try:
        start, end = _window()
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    rows = accounting_service.combined_ledger(branch_id=_branch_scope(), start=start, end=end)
    return jsonify({"items": rows, "count": len(rows)})
