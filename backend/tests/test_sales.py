"""
Sales transaction tests: recording, reversal symmetry, edit and delete.
"""

import pytest

from stockline.errors import (
    AlreadyReversed,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stockline.extensions import db
from stockline.models import Company, Outlet, OutletInventory, Sale, Warehouse, WarehouseInventory
from stockline.services import audit_service, sales_service


def snapshot(outlet_id, warehouse_id, product_id):
    """Every aggregate a sale touches, as plain values."""
    db.session.expire_all()
    oi = db.session.query(OutletInventory).filter_by(outlet_id=outlet_id, product_id=product_id).one()
    wi = db.session.query(WarehouseInventory).filter_by(warehouse_id=warehouse_id, product_id=product_id).one()
    outlet = db.session.get(Outlet, outlet_id)
    warehouse = db.session.get(Warehouse, warehouse_id)
    company = db.session.query(Company).one()
    return {
        "oi_qty": oi.qty,
        "oi_sold": oi.total_sold,
        "oi_revenue": oi.revenue_cents,
        "wi_revenue": wi.revenue_cents,
        "outlet_stock": outlet.total_stock,
        "outlet_sales": outlet.total_sales,
        "outlet_revenue": outlet.revenue_cents,
        "warehouse_revenue": warehouse.total_revenue_cents,
        "company_stock": company.total_stock,
        "company_units": company.total_units_sold,
        "company_revenue": company.total_revenue_cents,
    }


def sell(outlet_id, product_id, qty, price=1000, sold_by="rep-1"):
    return sales_service.record_sale(
        outlet_id,
        [{"product_id": product_id, "qty_sold": qty, "unit_price_cents": price}],
        sold_by=sold_by,
    )


def test_sale_scenario_updates_every_aggregate(stocked_outlet, product, warehouse):
    before = snapshot(stocked_outlet.id, warehouse.id, product.id)

    result = sell(stocked_outlet.id, product.id, 5)

    after = snapshot(stocked_outlet.id, warehouse.id, product.id)
    assert result["total_amount_cents"] == 5000
    assert after["oi_qty"] == before["oi_qty"] - 5
    assert after["outlet_revenue"] == before["outlet_revenue"] + 5000
    assert after["company_revenue"] == before["company_revenue"] + 5000
    assert after["company_units"] == before["company_units"] + 5
    assert after["company_stock"] == before["company_stock"] - 5
    assert after["wi_revenue"] == before["wi_revenue"] + 5000
    assert after["warehouse_revenue"] == before["warehouse_revenue"] + 5000
    assert audit_service.check_consistency() == []


def test_reversal_restores_every_aggregate(stocked_outlet, product, warehouse):
    before = snapshot(stocked_outlet.id, warehouse.id, product.id)
    result = sell(stocked_outlet.id, product.id, 5)

    reversal = sales_service.reverse_sale(result["sales"][0]["id"], actor_id="admin-1")

    assert snapshot(stocked_outlet.id, warehouse.id, product.id) == before
    assert reversal.is_reversal is True
    assert reversal.qty_sold == -5
    assert reversal.total_amount_cents == -5000
    assert reversal.transaction_id == f"REV-{result['transaction_id']}"
    assert audit_service.check_consistency() == []


def test_reversal_debits_the_warehouse_credited_at_sale_time(
    stocked_outlet, product, warehouse, second_warehouse, ship,
):
    ship("Company", None, "Warehouse", second_warehouse.id, product.id, 10)
    sale_id = sell(stocked_outlet.id, product.id, 5)["sales"][0]["id"]
    # outlet is resupplied from another warehouse after the sale
    ship("Warehouse", second_warehouse.id, "Outlet", stocked_outlet.id, product.id, 5)

    assert sales_service.get_sale(sale_id).revenue_warehouse_id == warehouse.id
    reversal = sales_service.reverse_sale(sale_id)

    assert reversal.revenue_warehouse_id == warehouse.id
    db.session.expire_all()
    for warehouse_id in (warehouse.id, second_warehouse.id):
        wi = db.session.query(WarehouseInventory).filter_by(warehouse_id=warehouse_id, product_id=product.id).one()
        assert wi.revenue_cents == 0
    assert audit_service.check_consistency() == []


def test_delete_transaction_after_resupply_debits_original_warehouse(
    stocked_outlet, product, warehouse, second_warehouse, ship,
):
    ship("Company", None, "Warehouse", second_warehouse.id, product.id, 10)
    txn = sell(stocked_outlet.id, product.id, 3)["transaction_id"]
    ship("Warehouse", second_warehouse.id, "Outlet", stocked_outlet.id, product.id, 4)

    sales_service.delete_transaction(txn)

    db.session.expire_all()
    revenue = {
        wi.warehouse_id: wi.revenue_cents
        for wi in db.session.query(WarehouseInventory).filter_by(product_id=product.id)
    }
    assert revenue == {warehouse.id: 0, second_warehouse.id: 0}


def test_sale_is_reversed_at_most_once(stocked_outlet, product):
    sale_id = sell(stocked_outlet.id, product.id, 2)["sales"][0]["id"]
    sales_service.reverse_sale(sale_id)

    with pytest.raises(AlreadyReversed):
        sales_service.reverse_sale(sale_id)
    assert db.session.query(Sale).filter_by(reversed_sale_id=sale_id).count() == 1


def test_reversal_record_cannot_be_reversed(stocked_outlet, product):
    sale_id = sell(stocked_outlet.id, product.id, 2)["sales"][0]["id"]
    reversal = sales_service.reverse_sale(sale_id)

    with pytest.raises(ValidationError):
        sales_service.reverse_sale(reversal.id)


def test_insufficient_stock_leaves_aggregates_unchanged(stocked_outlet, product, warehouse):
    before = snapshot(stocked_outlet.id, warehouse.id, product.id)

    with pytest.raises(InsufficientStockError) as exc:
        sell(stocked_outlet.id, product.id, 21)

    assert exc.value.available == 20
    assert snapshot(stocked_outlet.id, warehouse.id, product.id) == before
    assert db.session.query(Sale).count() == 0


def test_bulk_checkout_checks_aggregate_demand(stocked_outlet, product):
    with pytest.raises(InsufficientStockError):
        sales_service.record_sale(stocked_outlet.id, [
            {"product_id": product.id, "qty_sold": 12, "unit_price_cents": 1000},
            {"product_id": product.id, "qty_sold": 9, "unit_price_cents": 1000},
        ])
    assert db.session.query(Sale).count() == 0


def test_bulk_checkout_shares_transaction_id(stocked_outlet, product, other_product, warehouse, ship):
    ship("Company", None, "Outlet", stocked_outlet.id, other_product.id, 10)

    result = sales_service.record_sale(stocked_outlet.id, [
        {"product_id": product.id, "qty_sold": 2, "unit_price_cents": 1000},
        {"product_id": other_product.id, "qty_sold": 3, "unit_price_cents": 250},
    ], sold_by="rep-1", customer_name="Bola")

    assert result["total_amount_cents"] == 2750
    assert {s["transaction_id"] for s in result["sales"]} == {result["transaction_id"]}
    txn = sales_service.get_transaction(result["transaction_id"])
    assert txn["total_qty"] == 5
    assert len(txn["lines"]) == 2


def test_unit_price_is_required(stocked_outlet, product):
    with pytest.raises(ValidationError):
        sales_service.record_sale(stocked_outlet.id, [{"product_id": product.id, "qty_sold": 1}])


def test_product_never_received_at_outlet(stocked_outlet, other_product):
    with pytest.raises(InsufficientStockError):
        sell(stocked_outlet.id, other_product.id, 1, price=250)


def test_unknown_outlet(product, company):
    with pytest.raises(NotFoundError):
        sell("missing", product.id, 1)


class TestEditTransaction:
    def test_edit_applies_net_difference(self, stocked_outlet, product, warehouse):
        txn = sell(stocked_outlet.id, product.id, 5)["transaction_id"]

        result = sales_service.edit_transaction(
            txn, [{"product_id": product.id, "qty_sold": 3}], actor_id="admin-1",
        )

        after = snapshot(stocked_outlet.id, warehouse.id, product.id)
        assert result["transaction_id"] == txn
        assert result["total_amount_cents"] == 3000
        assert after["oi_qty"] == 17
        assert after["outlet_revenue"] == 3000
        assert after["company_units"] == 3
        assert db.session.query(Sale).filter_by(transaction_id=txn).count() == 1
        assert audit_service.check_consistency() == []

    def test_edit_beyond_stock_keeps_original(self, stocked_outlet, product, warehouse):
        txn = sell(stocked_outlet.id, product.id, 5)["transaction_id"]
        before = snapshot(stocked_outlet.id, warehouse.id, product.id)

        with pytest.raises(InsufficientStockError):
            sales_service.edit_transaction(txn, [{"product_id": product.id, "qty_sold": 26}])

        assert snapshot(stocked_outlet.id, warehouse.id, product.id) == before

    def test_edit_skips_already_reversed_lines(self, stocked_outlet, product, warehouse):
        result = sell(stocked_outlet.id, product.id, 4)
        sales_service.reverse_sale(result["sales"][0]["id"])

        sales_service.edit_transaction(result["transaction_id"], [{"product_id": product.id, "qty_sold": 1}])

        after = snapshot(stocked_outlet.id, warehouse.id, product.id)
        assert after["oi_qty"] == 19
        assert after["company_units"] == 1
        assert db.session.query(Sale).filter_by(is_reversal=True).count() == 0
        assert audit_service.check_consistency() == []

    def test_reversal_transaction_cannot_be_edited(self, stocked_outlet, product):
        sale_id = sell(stocked_outlet.id, product.id, 1)["sales"][0]["id"]
        reversal = sales_service.reverse_sale(sale_id)

        with pytest.raises(ValidationError):
            sales_service.edit_transaction(reversal.transaction_id, [{"product_id": product.id, "qty_sold": 1}])


def test_delete_transaction_unwinds_everything(stocked_outlet, product, warehouse):
    before = snapshot(stocked_outlet.id, warehouse.id, product.id)
    txn = sell(stocked_outlet.id, product.id, 6)["transaction_id"]

    result = sales_service.delete_transaction(txn, actor_id="admin-1")

    assert result == {"transaction_id": txn, "deleted": 1}
    assert snapshot(stocked_outlet.id, warehouse.id, product.id) == before
    assert db.session.query(Sale).count() == 0
    with pytest.raises(NotFoundError):
        sales_service.get_transaction(txn)


def test_price_change_does_not_touch_recorded_sales(stocked_outlet, product):
    from stockline.services import products_service

    sale_id = sell(stocked_outlet.id, product.id, 1)["sales"][0]["id"]
    products_service.update_product(product.id, {"unit_price_cents": 5000})

    sale = sales_service.get_sale(sale_id)
    assert sale.unit_price_cents == 1000
    assert sale.total_amount_cents == 1000
