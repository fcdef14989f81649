"""
Accounting tests: expenses and the income/expense summary.
"""

from datetime import datetime, timedelta

import pytest

from novapos.models import AuditEntry, Expense
from novapos.services import accounting_service
from novapos.services.accounting_service import AccountingError
from novapos.services.sales_service import CartLine, settle_sale, update_sale_status
from novapos.time_utils import parse_iso_datetime, utcnow


class TestExpenses:

    def test_record_expense(self, db_session, manager_ctx):
        expense = accounting_service.record_expense(
            "Milk delivery", category="Supplies", amount_cents=150000, actor=manager_ctx,
        )

        assert expense.branch_id == manager_ctx.branch_id
        assert expense.recorded_by == "Jane Smith"
        entry = db_session.query(AuditEntry).filter_by(action="Expense Recorded").one()
        assert entry.details == "Milk delivery - KSh 1,500 (Downtown Central Branch)"

    def test_fractional_amount_in_audit(self, db_session, manager_ctx):
        accounting_service.record_expense("Stamps", category="Other", amount_cents=1250, actor=manager_ctx)
        entry = db_session.query(AuditEntry).filter_by(action="Expense Recorded").one()
        assert entry.details == "Stamps - KSh 12.50 (Downtown Central Branch)"

    @pytest.mark.parametrize("amount", [0, -100, 12.5, True, None])
    def test_amount_must_be_positive_cents(self, db_session, manager_ctx, amount):
        with pytest.raises(AccountingError):
            accounting_service.record_expense("X", category="Other", amount_cents=amount, actor=manager_ctx)

    def test_unknown_category(self, db_session, manager_ctx):
        with pytest.raises(AccountingError):
            accounting_service.record_expense("X", category="Bribes", amount_cents=100, actor=manager_ctx)

    def test_filter_and_delete(self, db_session, manager_ctx):
        rent = accounting_service.record_expense("Rent", category="Rent", amount_cents=5000000, actor=manager_ctx)
        accounting_service.record_expense("Power", category="Utilities", amount_cents=300000, actor=manager_ctx)

        assert [e.description for e in accounting_service.list_expenses(category="Rent")] == ["Rent"]

        accounting_service.delete_expense(rent.id, actor=manager_ctx)
        assert [e.description for e in accounting_service.list_expenses()] == ["Power"]
        with pytest.raises(AccountingError):
            accounting_service.delete_expense(rent.id, actor=manager_ctx)


class TestSummary:

    def test_summary_counts_completed_sales_only(self, db_session, products, cashier_ctx, manager_ctx):
        kept = settle_sale([CartLine("1", 2)], payment_method="Cash", actor=cashier_ctx)
        voided = settle_sale([CartLine("4", 1)], payment_method="Card", actor=cashier_ctx)
        settle_sale([CartLine("2", 1)], payment_method="Mobile-Money", discount_rate_percent=10, actor=cashier_ctx)
        update_sale_status(voided.id, "voided", pin="1234", actor=manager_ctx)
        accounting_service.record_expense("Beans", category="Supplies", amount_cents=20000, actor=manager_ctx)

        summary = accounting_service.financial_summary(branch_id=cashier_ctx.branch_id)

        assert summary["income_cents"] == kept.total_cents + 46170 == 121770
        assert summary["expenses_cents"] == 20000
        assert summary["net_cents"] == 101770
        assert summary["completed_sales"] == 2
        assert summary["voided_sales"] == 1
        assert summary["refunded_sales"] == 0
        assert summary["income_by_payment_method"] == {"Cash": 75600, "Mobile-Money": 46170}
        assert summary["expenses_by_category"] == {"Supplies": 20000}
        assert summary["margin_bps"] == 8358  # 8357.58 bps

    def test_empty_summary(self, db_session, branch):
        summary = accounting_service.financial_summary()
        assert summary["income_cents"] == 0
        assert summary["net_cents"] == 0
        assert summary["margin_bps"] == 0

    def test_combined_ledger_newest_first(self, db_session, products, cashier_ctx, manager_ctx):
        settle_sale([CartLine("1", 1)], payment_method="Cash", actor=cashier_ctx)
        accounting_service.record_expense("Cups", category="Supplies", amount_cents=5000, actor=manager_ctx)

        rows = accounting_service.combined_ledger()
        assert {r["type"] for r in rows} == {"income", "expense"}
        stamps = [r["occurred_at"] for r in rows]
        assert stamps == sorted(stamps, reverse=True)


class TestReportingWindow:

    def test_bare_end_date_covers_the_day(self):
        end = parse_iso_datetime("2026-03-01", end_of_day=True)
        assert (end.hour, end.minute, end.second) == (23, 59, 59)
        assert parse_iso_datetime("2026-03-01") == datetime(2026, 3, 1)

    def test_offsets_normalise_to_utc(self):
        assert parse_iso_datetime("2026-03-01T12:00:00+03:00") == datetime(2026, 3, 1, 9, 0)
        assert parse_iso_datetime("2026-03-01T12:00:00Z") == datetime(2026, 3, 1, 12, 0)
        assert parse_iso_datetime("  ") is None

    def test_summary_route_window(self, client, products, cashier_headers, manager_headers):
        client.post("/api/sales", json={"items": [{"product_id": "1", "quantity": 1}], "payment_method": "Cash"},
                    headers=cashier_headers)

        res = client.get("/api/accounting/summary?end=2000-01-01", headers=manager_headers)
        assert res.status_code == 200
        assert res.get_json()["income_cents"] == 0

        res = client.get("/api/accounting/summary", headers=manager_headers)
        assert res.get_json()["income_cents"] == 37800

        assert client.get("/api/accounting/summary?start=yesterday", headers=manager_headers).status_code == 400


class TestSummaryWindow:

    def test_reversed_counts_respect_window(self, db_session, products, cashier_ctx, manager_ctx):
        sale = settle_sale([CartLine("1", 1)], payment_method="Cash", actor=cashier_ctx)
        update_sale_status(sale.id, "voided", pin="1234", actor=manager_ctx)
        refunded = settle_sale([CartLine("2", 1)], payment_method="Cash", actor=cashier_ctx)
        update_sale_status(refunded.id, "refunded", pin="1234", actor=manager_ctx)

        later = accounting_service.financial_summary(start=utcnow() + timedelta(days=1))
        assert (later["completed_sales"], later["voided_sales"], later["refunded_sales"]) == (0, 0, 0)

        earlier = accounting_service.financial_summary(end=utcnow() - timedelta(days=1))
        assert (earlier["voided_sales"], earlier["refunded_sales"]) == (0, 0)

        covering = accounting_service.financial_summary(
            start=utcnow() - timedelta(days=1), end=utcnow() + timedelta(days=1),
        )
        assert (covering["voided_sales"], covering["refunded_sales"]) == (1, 1)

    def test_reversed_counts_respect_branch(self, db_session, products, cashier_ctx, manager_ctx):
        sale = settle_sale([CartLine("1", 1)], payment_method="Cash", actor=cashier_ctx)
        update_sale_status(sale.id, "voided", pin="1234", actor=manager_ctx)

        assert accounting_service.financial_summary(branch_id="BR-ELSEWHERE")["voided_sales"] == 0


class TestMargin:

    @pytest.mark.parametrize("net,income,expected", [
        (1, 3, 3333),
        (-1, 3, -3333),
        (2, 3, 6667),
        (-2, 3, -6667),
        (1, 20000, 1),
        (-1, 20000, -1),
        (0, 500, 0),
        (100, 0, 0),
    ])
    def test_margin_is_symmetric(self, net, income, expected):
        assert accounting_service._margin_bps(net, income) == expected

    def test_loss_making_summary(self, db_session, products, cashier_ctx, manager_ctx):
        settle_sale([CartLine("1", 1)], payment_method="Cash", actor=cashier_ctx)
        accounting_service.record_expense("Rent", category="Rent", amount_cents=50000, actor=manager_ctx)

        summary = accounting_service.financial_summary()
        assert summary["net_cents"] == 37800 - 50000
        # -12200 / 37800 = -3227.51 bps
        assert summary["margin_bps"] == -3228


class TestExpenseCategories:

    def test_defaults_loaded_on_first_use(self, db_session):
        assert accounting_service.list_expense_categories() == [
            "Rent", "Utilities", "Supplies", "Marketing", "Wages", "Tax", "Other",
        ]

    def test_add_category_is_audited_and_usable(self, db_session, manager_ctx):
        accounting_service.add_expense_category("  Repairs ", actor=manager_ctx)

        assert accounting_service.list_expense_categories()[-1] == "Repairs"
        entry = db_session.query(AuditEntry).filter_by(action="Expense Category Added").one()
        assert entry.details == "Category created: Repairs"
        assert entry.user == "Jane Smith"

        expense = accounting_service.record_expense("Fix grinder", category="Repairs", amount_cents=9000,
                                                    actor=manager_ctx)
        assert expense.category == "Repairs"

    @pytest.mark.parametrize("name", ["", "   ", None, "Rent"])
    def test_add_rejects_blank_and_duplicate(self, db_session, manager_ctx, name):
        with pytest.raises(AccountingError):
            accounting_service.add_expense_category(name, actor=manager_ctx)

    def test_removed_category_is_refused_for_new_expenses(self, db_session, manager_ctx):
        old = accounting_service.record_expense("Flyers", category="Marketing", amount_cents=500, actor=manager_ctx)

        accounting_service.remove_expense_category("Marketing", actor=manager_ctx)

        assert "Marketing" not in accounting_service.list_expense_categories()
        entry = db_session.query(AuditEntry).filter_by(action="Expense Category Removed").one()
        assert entry.details == "Category deleted: Marketing"
        with pytest.raises(AccountingError):
            accounting_service.record_expense("More flyers", category="Marketing", amount_cents=500,
                                              actor=manager_ctx)
        db_session.expire_all()
        assert db_session.get(Expense, old.id).category == "Marketing"

    def test_removing_everything_does_not_restore_defaults(self, db_session, manager_ctx):
        for name in accounting_service.list_expense_categories():
            accounting_service.remove_expense_category(name, actor=manager_ctx)
        assert accounting_service.list_expense_categories() == []

    def test_remove_unknown(self, db_session, manager_ctx):
        with pytest.raises(AccountingError):
            accounting_service.remove_expense_category("Bribes", actor=manager_ctx)

    def test_category_routes(self, client, roster, manager_headers, cashier_headers):
        assert client.get("/api/expense-categories", headers=cashier_headers).status_code == 403

        res = client.post("/api/expense-categories", json={"name": "Repairs"}, headers=manager_headers)
        assert res.status_code == 201
        assert res.get_json()["category"]["name"] == "Repairs"
        assert client.post("/api/expense-categories", json={"name": "Repairs"},
                           headers=manager_headers).status_code == 409

        assert client.delete("/api/expense-categories/Tax", headers=manager_headers).status_code == 200
        assert client.delete("/api/expense-categories/Tax", headers=manager_headers).status_code == 404

        items = client.get("/api/expense-categories", headers=manager_headers).get_json()["items"]
        assert "Repairs" in items and "Tax" not in items
