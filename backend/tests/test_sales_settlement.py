"""
Sale settlement tests.

Verifies:
- totals identity and the worked pricing examples
- one sale ledger entry per cart line, clamped at zero
- validate-then-commit: a refused cart writes nothing
- sale lines are snapshots, untouched by later catalog edits
"""

import math

import pytest

from novapos.models import AuditEntry, DocumentSequence, Sale, SaleLine, StockAdjustment
from novapos.services import catalog_service
from novapos.services.sales_service import (
    CartLine,
    SaleError,
    compute_totals,
    normalize_rate_bps,
    round_half_up,
    settle_sale,
)
from novapos.services.stock_ledger_service import verify_history


# =============================================================================
# PRICING (pure)
# =============================================================================


class TestComputeTotals:

    def test_two_espressos_at_eight_percent(self):
        totals = compute_totals([CartLine("1", 2, unit_price_cents=35000)], 8, 0)
        assert (totals.subtotal_cents, totals.discount_cents, totals.tax_cents, totals.total_cents) == (
            70000, 0, 5600, 75600,
        )

    def test_matcha_with_ten_percent_discount(self):
        totals = compute_totals([CartLine("2", 1, unit_price_cents=47500)], 8, 10)
        assert totals.subtotal_cents == 47500
        assert totals.discount_cents == 4750
        assert totals.taxable_cents == 42750
        assert totals.tax_cents == 3420
        assert totals.total_cents == 46170

    @pytest.mark.parametrize("lines", [
        [(199, 3), (1, 1)],
        [(333, 7), (12345, 2), (5, 9)],
        [(1, 1)],
    ])
    @pytest.mark.parametrize("tax,discount", [(8, 0), (16, 12.5), (7.25, 33), (0, 100)])
    def test_identity_holds(self, lines, tax, discount):
        cart = [CartLine(str(i), qty, unit_price_cents=price) for i, (price, qty) in enumerate(lines)]
        totals = compute_totals(cart, tax, discount)

        assert totals.subtotal_cents == sum(price * qty for price, qty in lines)
        assert totals.total_cents == totals.subtotal_cents - totals.discount_cents + totals.tax_cents
        assert 0 <= totals.discount_cents <= totals.subtotal_cents
        assert totals.tax_cents >= 0

    def test_discount_capped_at_subtotal(self):
        totals = compute_totals([CartLine("1", 1, unit_price_cents=1000)], 8, 150)
        assert totals.discount_cents == 1000
        assert totals.tax_cents == 0
        assert totals.total_cents == 0

    @pytest.mark.parametrize("rate,expected", [
        (8, 800),
        (8.0, 800),
        ("8.25", 825),
        (0.005, 1),
        (-5, 0),
        ("abc", 0),
        (None, 0),
        (True, 0),
        (math.nan, 0),
        (math.inf, 0),
        (100, 10_000),
        (250, 10_000),
        ("1e30", 10_000),
        (1e30, 10_000),
        ("1e-30", 0),
    ])
    def test_normalize_rate(self, rate, expected):
        assert normalize_rate_bps(rate) == expected

    def test_round_half_up(self):
        assert round_half_up(5, 10) == 1
        assert round_half_up(4, 10) == 0
        assert round_half_up(15, 10) == 2
        assert round_half_up(0, 10) == 0


# =============================================================================
# SETTLEMENT
# =============================================================================


class TestSettleSale:

    def test_settles_and_decrements_stock(self, db_session, products, cashier_ctx):
        sale = settle_sale(
            [CartLine("1", 2)],
            payment_method="Cash",
            tax_rate_percent=8,
            actor=cashier_ctx,
        )

        assert sale.status == "completed"
        assert sale.document_number == "SALE-000001"
        assert sale.total_cents == 75600
        assert sale.cashier_name == "John Doe"
        assert sale.branch_id == cashier_ctx.branch_id
        assert sale.branch_name == "Downtown Central Branch"
        assert products["1"].stock == 48

        entry = products["1"].history[0]
        assert entry.type == "sale"
        assert entry.quantity == -2
        assert entry.user == "John Doe"
        assert entry.sale_id == "SALE-000001"
        assert entry.note == "Order SALE-000001 (Downtown Central Branch)"

    def test_default_tax_rate_from_config(self, db_session, products, cashier_ctx):
        sale = settle_sale([CartLine("2", 1)], payment_method="Card", discount_rate_percent=10, actor=cashier_ctx)
        assert sale.tax_rate_bps == 800
        assert sale.total_cents == 46170

    def test_one_ledger_entry_per_cart_line(self, db_session, products, cashier_ctx):
        sale = settle_sale(
            [CartLine("1", 1), CartLine("4", 2), CartLine("1", 3)],
            payment_method="Mobile-Money",
            actor=cashier_ctx,
        )

        entries = db_session.query(StockAdjustment).filter_by(sale_id=sale.document_number).all()
        assert len(entries) == 3
        assert products["1"].stock == 46
        assert products["4"].stock == 18
        assert [line.line_number for line in sale.lines] == [1, 2, 3]
        assert verify_history(products["1"]) == []

    def test_oversell_clamps_to_zero(self, db_session, products, cashier_ctx):
        sale = settle_sale([CartLine("3", 8)], payment_method="Cash", actor=cashier_ctx)

        muffin = products["3"]
        assert muffin.stock == 0
        entry = muffin.history[0]
        assert entry.new_stock == 0
        assert entry.quantity == -5
        assert entry.requested_quantity == -8
        # The sale itself is priced on what was asked for
        assert sale.lines[0].quantity == 8

    def test_exactly_one_audit_entry(self, db_session, products, cashier_ctx):
        before = db_session.query(AuditEntry).count()
        sale = settle_sale([CartLine("1", 1), CartLine("2", 1)], payment_method="Cash", actor=cashier_ctx)

        completed = db_session.query(AuditEntry).filter_by(action="Sale Completed").all()
        assert len(completed) == 1
        assert completed[0].details == f"Order {sale.document_number} at Downtown Central Branch"
        assert completed[0].user == "John Doe"
        assert completed[0].role == "Cashier"
        assert db_session.query(AuditEntry).count() == before + 1

    def test_m_pesa_alias(self, db_session, products, cashier_ctx):
        sale = settle_sale([CartLine("1", 1)], payment_method="M-Pesa", actor=cashier_ctx)
        assert sale.payment_method == "Mobile-Money"

    def test_document_numbers_increment(self, db_session, products, cashier_ctx):
        first = settle_sale([CartLine("1", 1)], payment_method="Cash", actor=cashier_ctx)
        second = settle_sale([CartLine("1", 1)], payment_method="Cash", actor=cashier_ctx)
        assert (first.document_number, second.document_number) == ("SALE-000001", "SALE-000002")

    def test_bad_rates_treated_as_zero(self, db_session, products, cashier_ctx):
        sale = settle_sale(
            [CartLine("1", 1)],
            payment_method="Cash",
            tax_rate_percent="lots",
            discount_rate_percent=-20,
            actor=cashier_ctx,
        )
        assert sale.tax_cents == 0
        assert sale.discount_cents == 0
        assert sale.total_cents == sale.subtotal_cents == 35000

    @pytest.mark.parametrize("rate", ["1e30", 1e30, 10**20])
    def test_huge_rates_clamp_to_full_rate(self, db_session, products, cashier_ctx, rate):
        sale = settle_sale(
            [CartLine("1", 1)],
            payment_method="Cash",
            tax_rate_percent=rate,
            discount_rate_percent=rate,
            actor=cashier_ctx,
        )

        assert (sale.tax_rate_bps, sale.discount_rate_bps) == (10_000, 10_000)
        assert sale.discount_cents == 35000
        assert sale.tax_cents == 0
        assert sale.total_cents == 0

    def test_tax_above_full_rate_is_clamped(self, db_session, products, cashier_ctx):
        sale = settle_sale([CartLine("1", 1)], payment_method="Cash", tax_rate_percent=250, actor=cashier_ctx)
        assert sale.tax_rate_bps == 10_000
        assert sale.tax_cents == 35000
        assert sale.total_cents == 70000


# =============================================================================
# VALIDATE-THEN-COMMIT
# =============================================================================


class TestRefusedCarts:

    def _assert_untouched(self, db_session, products):
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleLine).count() == 0
        assert db_session.query(StockAdjustment).filter_by(type="sale").count() == 0
        assert db_session.query(AuditEntry).filter_by(action="Sale Completed").count() == 0
        assert db_session.query(DocumentSequence).filter_by(document_type="SALE").count() == 0
        assert [products[k].stock for k in ("1", "2", "3", "4")] == [50, 12, 5, 20]

    def test_empty_cart(self, db_session, products, cashier_ctx):
        with pytest.raises(SaleError, match="Cart is empty"):
            settle_sale([], payment_method="Cash", actor=cashier_ctx)
        self._assert_untouched(db_session, products)

    @pytest.mark.parametrize("qty", [0, -1, 1.5, "2", None])
    def test_bad_quantity(self, db_session, products, cashier_ctx, qty):
        with pytest.raises(SaleError) as exc:
            settle_sale([CartLine("1", 1), CartLine("2", qty)], payment_method="Cash", actor=cashier_ctx)
        assert exc.value.details["lines"][0]["line"] == 2
        self._assert_untouched(db_session, products)

    def test_unknown_product_refuses_whole_cart(self, db_session, products, cashier_ctx):
        with pytest.raises(SaleError) as exc:
            settle_sale([CartLine("1", 2), CartLine("nope", 1)], payment_method="Cash", actor=cashier_ctx)
        assert exc.value.details["product_ids"] == ["nope"]
        self._assert_untouched(db_session, products)

    def test_unknown_payment_method(self, db_session, products, cashier_ctx):
        with pytest.raises(SaleError, match="Invalid payment method"):
            settle_sale([CartLine("1", 1)], payment_method="Cheque", actor=cashier_ctx)
        self._assert_untouched(db_session, products)

    def test_negative_price_override(self, db_session, products, cashier_ctx):
        with pytest.raises(SaleError):
            settle_sale([CartLine("1", 1, unit_price_cents=-5)], payment_method="Cash", actor=cashier_ctx)
        self._assert_untouched(db_session, products)


# =============================================================================
# SNAPSHOTS
# =============================================================================


class TestLineSnapshots:

    def test_catalog_edits_do_not_reach_sales(self, db_session, products, cashier_ctx, admin_ctx):
        sale = settle_sale([CartLine("1", 2)], payment_method="Cash", actor=cashier_ctx)
        sale_id = sale.id

        catalog_service.update_product("1", {"name": "Espresso Doppio", "price_cents": 99900}, actor=admin_ctx)
        db_session.expire_all()

        line = db_session.get(Sale, sale_id).lines[0]
        assert line.name == "Classic Espresso"
        assert line.unit_price_cents == 35000
        assert line.line_total_cents == 70000

    def test_deleting_product_keeps_sale_lines(self, db_session, products, cashier_ctx, admin_ctx):
        sale = settle_sale([CartLine("4", 1)], payment_method="Cash", actor=cashier_ctx)
        sale_id = sale.id

        catalog_service.delete_product("4", actor=admin_ctx)
        db_session.expire_all()

        line = db_session.get(Sale, sale_id).lines[0]
        assert line.product_id == "4"
        assert line.name == "Avocado Toast"
