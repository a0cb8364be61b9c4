"""
Ledger primitive tests.

Each primitive is one guarded UPDATE; these tests pin the guard and
error-reporting behaviour that the movement engine relies on.
"""

import pytest

from stockline.errors import ConsistencyError, InsufficientStockError, NotFoundError
from stockline.extensions import db
from stockline.models import Company, OutletInventory, Product, WarehouseInventory
from stockline.models.inventory import STOCK_STATUS_IN_STOCK, STOCK_STATUS_OUT_OF_STOCK
from stockline.services import ledger_service as ledger
from stockline.services.concurrency import atomic


def test_increment_company_adds_deltas(company):
    with atomic():
        ledger.increment_company(total_workers=3, total_revenue_cents=500)

    row = db.session.get(Company, company.id)
    assert row.total_workers == 3
    assert row.total_revenue_cents == 500


def test_zero_deltas_are_a_no_op(company):
    before = db.session.get(Company, company.id).last_updated
    with atomic():
        ledger.increment_company(total_stock=0)
    assert db.session.get(Company, company.id).last_updated == before


def test_unknown_counter_is_rejected(company):
    with pytest.raises(ConsistencyError) as exc:
        with atomic():
            ledger.increment_company(total_bananas=1)
    assert "total_bananas" in exc.value.details["columns"]


def test_fixed_columns_cannot_be_incremented(product):
    with pytest.raises(ConsistencyError):
        with atomic():
            ledger.increment_product(product.id, status=1)


def test_qty_guard_raises_insufficient_stock(product):
    with pytest.raises(InsufficientStockError) as exc:
        with atomic():
            ledger.increment_product(product.id, qty=-101)

    assert exc.value.requested == 101
    assert exc.value.available == 100
    assert db.session.get(Product, product.id).qty == 100


def test_qty_may_reach_exactly_zero(product):
    with atomic():
        ledger.increment_product(product.id, qty=-100)

    row = db.session.get(Product, product.id)
    assert row.qty == 0
    assert row.status == STOCK_STATUS_OUT_OF_STOCK


def test_status_recomputed_in_same_statement(product):
    with atomic():
        ledger.increment_product(product.id, qty=-100)
        ledger.increment_product(product.id, qty=1)
    assert db.session.get(Product, product.id).status == STOCK_STATUS_IN_STOCK


def test_in_transit_guard_raises_consistency_error(product):
    with pytest.raises(ConsistencyError):
        with atomic():
            ledger.increment_company_product(product.id, in_transit=-1)


def test_missing_row_raises_caller_error(company):
    with pytest.raises(NotFoundError):
        with atomic():
            ledger.increment_warehouse("no-such-warehouse", total_stock=1)

    with pytest.raises(ConsistencyError):
        with atomic():
            ledger.increment_warehouse("no-such-warehouse", missing_error=ConsistencyError, total_stock=1)


def test_optional_row_is_skipped_when_missing(company):
    with atomic():
        ledger.increment_warehouse_inventory("gone", "gone", required=False, revenue_cents=10)


def test_upsert_creates_row_once_and_accumulates(product, warehouse):
    snapshot = {"sku": "SKU-001", "name": "Widget", "unit_price_cents": 1000}
    with atomic():
        first = ledger.upsert_warehouse_inventory(warehouse.id, product.id, **snapshot, qty=5, total_received=5)
    with atomic():
        second = ledger.upsert_warehouse_inventory(warehouse.id, product.id, **snapshot, qty=7, total_received=7)

    assert first is True
    assert second is False
    rows = db.session.query(WarehouseInventory).filter_by(warehouse_id=warehouse.id, product_id=product.id).all()
    assert len(rows) == 1
    assert rows[0].qty == 12
    assert rows[0].total_received == 12
    assert rows[0].status == STOCK_STATUS_IN_STOCK


def test_upsert_refreshes_outlet_snapshot(product, outlet, warehouse):
    with atomic():
        ledger.upsert_outlet_inventory(
            outlet.id, product.id, sku="SKU-001", name="Widget", unit_price_cents=1000,
            warehouse_id=warehouse.id, qty=2,
        )
    with atomic():
        ledger.upsert_outlet_inventory(
            outlet.id, product.id, sku="SKU-001", name="Widget v2", unit_price_cents=1200,
            warehouse_id=warehouse.id, qty=3,
        )

    row = db.session.query(OutletInventory).filter_by(outlet_id=outlet.id, product_id=product.id).one()
    assert row.qty == 5
    assert row.name == "Widget v2"
    assert row.unit_price_cents == 1200
    assert row.warehouse_id == warehouse.id


def test_failed_statement_rolls_back_earlier_writes(product):
    with pytest.raises(InsufficientStockError):
        with atomic():
            ledger.increment_company(total_revenue_cents=999)
            ledger.increment_product(product.id, qty=-1000)

    company = db.session.query(Company).one()
    assert company.total_revenue_cents == 0
