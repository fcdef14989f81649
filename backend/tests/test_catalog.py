"""
Catalog tests: seeding, edits, CSV import and whole-collection export/restore.
"""

import pytest

from novapos.models import AuditEntry, Product, StockAdjustment
from novapos.services import catalog_service
from novapos.services.catalog_service import CatalogError
from novapos.services import settings_service
from novapos.services.settings_service import SettingsError
from novapos.services.stock_ledger_service import verify_history
from novapos.validation import ConflictError, ValidationError


CSV_TEXT = """name,category,price,stock,description,image,barcode,batch,expiry
Flat White,Coffee,400,30,Velvety microfoam,,555000111222,B-1,2026-01-01
Croissant,Pastry,"1,250.50",0,,,,,
,Coffee,100,5
Chai Latte,,300,5
Mystery,Tea,cheap,5
Cold Brew,Coffee,450,-2
"""


class TestSeedAndCrud:

    def test_seed_builds_ledgers(self, db_session):
        assert catalog_service.seed_catalog() == 4
        products = {p.id: p for p in catalog_service.list_products()}

        assert [products[k].stock for k in ("1", "2", "3", "4")] == [50, 12, 5, 20]
        assert products["1"].price_cents == 35000
        for product in products.values():
            assert len(product.history) == 1
            assert product.history[0].type == "restock"
            assert product.history[0].previous_stock == 0
            assert verify_history(product) == []

    def test_seed_is_idempotent(self, db_session):
        catalog_service.seed_catalog()
        assert catalog_service.seed_catalog() == 0
        assert db_session.query(Product).count() == 4

    def test_generated_ids(self, db_session, admin_ctx):
        a = catalog_service.create_product({"name": "A", "category": "X", "price_cents": 1}, actor=admin_ctx)
        b = catalog_service.create_product({"name": "B", "category": "X", "price_cents": 1}, actor=admin_ctx)
        assert (a.id, b.id) == ("PROD-0001", "PROD-0002")
        assert a.history == []

    def test_duplicate_id_conflicts(self, db_session, products, admin_ctx):
        with pytest.raises(ConflictError):
            catalog_service.create_product({"id": "1", "name": "Dup", "category": "X", "price_cents": 1}, actor=admin_ctx)

    def test_negative_price_rejected(self, db_session, admin_ctx):
        with pytest.raises(ValidationError):
            catalog_service.create_product({"name": "A", "category": "X", "price_cents": -1}, actor=admin_ctx)

    def test_update_refuses_stock(self, db_session, products, admin_ctx):
        with pytest.raises(ValidationError):
            catalog_service.update_product("1", {"stock": 99}, actor=admin_ctx)
        assert products["1"].stock == 50

    def test_update_unknown(self, db_session, admin_ctx):
        with pytest.raises(CatalogError):
            catalog_service.update_product("nope", {"name": "x"}, actor=admin_ctx)

    def test_low_stock(self, db_session, products):
        assert [p.id for p in catalog_service.low_stock_products()] == ["3"]
        assert [p.id for p in catalog_service.low_stock_products(15)] == ["3", "2"]

    def test_search(self, db_session, products):
        assert [p.id for p in catalog_service.list_products(search="matcha")] == ["2"]
        assert [p.id for p in catalog_service.list_products(search="998877665544")] == ["4"]
        assert [p.id for p in catalog_service.list_products(category="Pastry")] == ["3"]


class TestCsvImport:

    def test_import(self, db_session, admin_ctx):
        result = catalog_service.import_products_csv(CSV_TEXT, actor=admin_ctx)

        created = {p.name: p for p in result["created"]}
        assert set(created) == {"Flat White", "Croissant"}
        assert [s["row"] for s in result["skipped"]] == [4, 5, 6, 7]

        flat_white = created["Flat White"]
        assert flat_white.price_cents == 40000
        assert flat_white.stock == 30
        assert flat_white.barcode == "555000111222"
        assert flat_white.batch_number == "B-1"
        entry = flat_white.history[0]
        assert (entry.type, entry.previous_stock, entry.new_stock) == ("restock", 0, 30)
        assert entry.user == "System (Bulk Import)"
        assert entry.note == "Initial import"

        croissant = created["Croissant"]
        assert croissant.price_cents == 125050
        assert croissant.stock == 0
        assert croissant.history == []

        audit = db_session.query(AuditEntry).filter_by(action="Bulk Import").one()
        assert audit.details == "Imported 2 products"

    def test_header_only(self, db_session):
        result = catalog_service.import_products_csv("name,category,price,stock\n")
        assert result == {"created": [], "skipped": []}

    def test_empty_text(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.import_products_csv("  ")


class TestCatalogIO:

    def test_export_restore_round_trip(self, db_session, products, admin_ctx):
        exported = catalog_service.export_catalog()
        assert [p["id"] for p in exported] == ["1", "2", "3", "4"]
        assert exported[0]["history"][0]["new_stock"] == 50

        catalog_service.create_product({"name": "Extra", "category": "X", "price_cents": 1}, actor=admin_ctx)
        assert catalog_service.restore_catalog(exported, actor=admin_ctx) == 4

        restored = {p.id: p for p in catalog_service.list_products()}
        assert set(restored) == {"1", "2", "3", "4"}
        assert restored["3"].stock == 5
        assert all(verify_history(p) == [] for p in restored.values())

    def test_inconsistent_restore_is_refused(self, db_session, products, admin_ctx):
        exported = catalog_service.export_catalog()
        exported[0]["stock"] = 7  # history says 50

        with pytest.raises(CatalogError):
            catalog_service.restore_catalog(exported, actor=admin_ctx)

        db_session.expire_all()
        assert db_session.get(Product, "1").stock == 50
        assert db_session.query(Product).count() == 4

    def test_duplicate_ids_refused(self, db_session, products, admin_ctx):
        exported = catalog_service.export_catalog()
        with pytest.raises(ValidationError):
            catalog_service.restore_catalog(exported + exported[:1], actor=admin_ctx)

    def test_restore_empty_catalog(self, db_session, products, admin_ctx):
        assert catalog_service.restore_catalog([], actor=admin_ctx) == 0
        assert db_session.query(Product).count() == 0
        assert db_session.query(StockAdjustment).count() == 0


class TestLowStockThreshold:

    def test_defaults_to_config(self, db_session):
        assert settings_service.get_low_stock_threshold() == 10

    def test_stored_threshold_drives_low_stock(self, db_session, products, manager_ctx):
        assert settings_service.set_low_stock_threshold(15, actor=manager_ctx) == 15

        assert settings_service.get_low_stock_threshold() == 15
        assert [p.id for p in catalog_service.low_stock_products()] == ["3", "2"]
        entry = db_session.query(AuditEntry).filter_by(action="Settings Updated").one()
        assert entry.details == "Low stock threshold: 10 -> 15"
        assert entry.user == "Jane Smith"

    def test_unchanged_threshold_is_not_audited(self, db_session, manager_ctx):
        settings_service.set_low_stock_threshold(10, actor=manager_ctx)
        assert db_session.query(AuditEntry).filter_by(action="Settings Updated").count() == 0

    def test_zero_disables_alert(self, db_session, products, manager_ctx):
        settings_service.set_low_stock_threshold("0", actor=manager_ctx)
        assert catalog_service.low_stock_products() == []

    @pytest.mark.parametrize("value", [-1, 2.5, "ten", None, True, 10**9])
    def test_invalid_threshold(self, db_session, manager_ctx, value):
        with pytest.raises(SettingsError):
            settings_service.set_low_stock_threshold(value, actor=manager_ctx)
        assert settings_service.get_low_stock_threshold() == 10

    def test_threshold_routes(self, client, products, manager_headers, cashier_headers):
        assert client.get("/api/inventory/low-stock-threshold", headers=cashier_headers).get_json() == {"threshold": 10}
        assert client.put("/api/inventory/low-stock-threshold", json={"threshold": 15},
                          headers=cashier_headers).status_code == 403

        res = client.put("/api/inventory/low-stock-threshold", json={"threshold": 15}, headers=manager_headers)
        assert res.status_code == 200

        low = client.get("/api/inventory/low-stock", headers=cashier_headers).get_json()
        assert low["threshold"] == 15
        assert [p["id"] for p in low["items"]] == ["3", "2"]

        assert client.put("/api/inventory/low-stock-threshold", json={"threshold": -3},
                          headers=manager_headers).status_code == 400
