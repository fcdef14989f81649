# Overview: Service-layer operations for accounting; expenses, expense categories and read-only income summaries.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Branch, Expense, ExpenseCategory, Sale, SaleStatus
from novapos.time_utils import to_utc_z, utcnow
from .audit_service import record
from .sales_service import round_half_up
from .session_service import SessionContext, system_context
from .settings_service import get_setting, put_setting

DEFAULT_EXPENSE_CATEGORIES = ("Rent", "Utilities", "Supplies", "Marketing", "Wages", "Tax", "Other")
CATEGORIES_SEEDED_KEY = "expense_categories_seeded"


class AccountingError(Exception):
    """Raised for accounting operation errors."""
    pass


def _ensure_default_categories() -> bool:
    """
    Load DEFAULT_EXPENSE_CATEGORIES the first time categories are touched.

    A settings marker records that this happened, so removing every
    category later does not bring the defaults back. Flushes only.
    """
    if get_setting(CATEGORIES_SEEDED_KEY) is not None:
        return False
    existing = {name for (name,) in db.session.query(ExpenseCategory.name).all()}
    for name in DEFAULT_EXPENSE_CATEGORIES:
        if name not in existing:
            db.session.add(ExpenseCategory(name=name))
    put_setting(CATEGORIES_SEEDED_KEY, "1")
    return True


def list_expense_categories() -> list[str]:
    """Category names in creation order."""
    try:
        if _ensure_default_categories():
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return [c.name for c in db.session.query(ExpenseCategory).order_by(ExpenseCategory.id.asc()).all()]


def add_expense_category(name: str, *, actor: SessionContext | None = None) -> ExpenseCategory:
    actor = actor or system_context()
    if not isinstance(name, str) or not name.strip():
        raise AccountingError("Category name is required")
    name = name.strip()
    if len(name) > 64:
        raise AccountingError("Category name exceeds max length 64")

    try:
        _ensure_default_categories()
        if db.session.query(ExpenseCategory).filter_by(name=name).first():
            raise AccountingError("Category already exists")
        category = ExpenseCategory(name=name)
        db.session.add(category)
        record("Expense Category Added", f"Category created: {name}", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return category


def remove_expense_category(name: str, *, actor: SessionContext | None = None) -> None:
    """Remove a category. Expenses already filed under it keep the name."""
    actor = actor or system_context()
    try:
        _ensure_default_categories()
        category = db.session.query(ExpenseCategory).filter_by(name=name).first()
        if not category:
            raise AccountingError("Category not found")
        db.session.delete(category)
        record("Expense Category Removed", f"Category deleted: {name}", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _format_amount(cents: int) -> str:
    whole, frac = divmod(cents, 100)
    return f"{whole:,}" if frac == 0 else f"{whole:,}.{frac:02d}"


def record_expense(
    description: str,
    *,
    category: str,
    amount_cents: int,
    branch_id: str | None = None,
    occurred_at: datetime | None = None,
    actor: SessionContext | None = None,
) -> Expense:
    """Record money paid out. branch_id defaults to the actor's branch."""
    actor = actor or system_context()
    if not description or not description.strip():
        raise AccountingError("Description is required")
    if category not in list_expense_categories():
        raise AccountingError(f"Unknown expense category: {category}")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise AccountingError("amount_cents must be a positive integer")

    branch_id = branch_id or actor.branch_id
    branch_name = actor.branch_name
    if branch_id and branch_id != actor.branch_id:
        branch = db.session.query(Branch).filter_by(id=branch_id).first()
        if branch is None:
            raise AccountingError("Branch not found")
        branch_name = branch.name

    try:
        expense = Expense(
            description=description.strip(),
            category=category,
            amount_cents=amount_cents,
            branch_id=branch_id,
            recorded_by=actor.cashier_name,
            occurred_at=occurred_at or utcnow(),
        )
        db.session.add(expense)
        currency = current_app.config.get("CURRENCY_CODE", "KSh")
        record(
            "Expense Recorded",
            f"{expense.description} - {currency} {_format_amount(amount_cents)} ({branch_name})",
            **actor.audit_kwargs(),
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return expense


def delete_expense(expense_id: int, *, actor: SessionContext | None = None) -> None:
    actor = actor or system_context()
    try:
        expense = db.session.query(Expense).filter_by(id=expense_id).first()
        if not expense:
            raise AccountingError("Expense not found")
        description = expense.description
        db.session.delete(expense)
        record("Expense Removed", f"{description} removed", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _expense_query(branch_id, category, start, end):
    q = db.session.query(Expense)
    if branch_id:
        q = q.filter(Expense.branch_id == branch_id)
    if category:
        q = q.filter(Expense.category == category)
    if start:
        q = q.filter(Expense.occurred_at >= start)
    if end:
        q = q.filter(Expense.occurred_at <= end)
    return q


def _scope_sales(q, branch_id, start, end):
    if branch_id:
        q = q.filter(Sale.branch_id == branch_id)
    if start:
        q = q.filter(Sale.created_at >= start)
    if end:
        q = q.filter(Sale.created_at <= end)
    return q


def _completed_sales_query(branch_id, start, end):
    q = db.session.query(Sale).filter(Sale.status == SaleStatus.COMPLETED.value)
    return _scope_sales(q, branch_id, start, end)


def _margin_bps(net: int, income: int) -> int:
    """net / income in basis points, rounded half away from zero."""
    if income <= 0:
        return 0
    magnitude = round_half_up(abs(net) * 10_000, income)
    return -magnitude if net < 0 else magnitude


def list_expenses(
    *,
    branch_id: str | None = None,
    category: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Expense]:
    return _expense_query(branch_id, category, start, end).order_by(Expense.occurred_at.desc(), Expense.id.desc()).all()


def financial_summary(
    *,
    branch_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """
    Income, expenses and net for a branch (or all branches) over a window.

    Income counts completed sales only; voided and refunded sales are
    reported as counts. margin_bps is net / income in basis points.
    """
    sales = _completed_sales_query(branch_id, start, end)
    income = sales.with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()
    sale_count = sales.count()

    by_method = dict(
        sales.with_entities(Sale.payment_method, func.sum(Sale.total_cents))
        .group_by(Sale.payment_method)
        .all()
    )

    expenses = _expense_query(branch_id, None, start, end)
    expense_total = expenses.with_entities(func.coalesce(func.sum(Expense.amount_cents), 0)).scalar()
    by_category = dict(
        expenses.with_entities(Expense.category, func.sum(Expense.amount_cents))
        .group_by(Expense.category)
        .all()
    )

    reversed_q = _scope_sales(
        db.session.query(Sale.status, func.count(Sale.id)).filter(
            Sale.status.in_([SaleStatus.VOIDED.value, SaleStatus.REFUNDED.value])
        ),
        branch_id, start, end,
    )
    reversed_counts = dict(reversed_q.group_by(Sale.status).all())

    net = income - expense_total
    return {
        "branch_id": branch_id,
        "income_cents": income,
        "expenses_cents": expense_total,
        "net_cents": net,
        "margin_bps": _margin_bps(net, income),
        "completed_sales": sale_count,
        "voided_sales": reversed_counts.get(SaleStatus.VOIDED.value, 0),
        "refunded_sales": reversed_counts.get(SaleStatus.REFUNDED.value, 0),
        "income_by_payment_method": by_method,
        "expenses_by_category": by_category,
    }


def combined_ledger(
    *,
    branch_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict]:
    """Completed sales as income and expenses as outgoings, newest first."""
    rows = [
        {
            "type": "income",
            "reference": sale.document_number,
            "description": f"Order {sale.document_number}",
            "category": "Sales",
            "amount_cents": sale.total_cents,
            "method": sale.payment_method,
            "occurred_at": sale.created_at,
        }
        for sale in _completed_sales_query(branch_id, start, end).all()
    ]
    rows.extend(
        {
            "type": "expense",
            "reference": str(expense.id),
            "description": expense.description,
            "category": expense.category,
            "amount_cents": expense.amount_cents,
            "method": None,
            "occurred_at": expense.occurred_at,
        }
        for expense in _expense_query(branch_id, None, start, end).all()
    )
    rows.sort(key=lambda r: r["occurred_at"], reverse=True)
    for row in rows:
        row["occurred_at"] = to_utc_z(row["occurred_at"])
    return rows
