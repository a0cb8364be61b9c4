"""
Sales listing and summary report tests.
"""

from datetime import timedelta

import pytest

from stockline.errors import ValidationError
from stockline.extensions import db
from stockline.models import Sale
from stockline.services import reporting_service, sales_service
from stockline.time_utils import utcnow


def _checkout(outlet_id, product_id, qtys, sold_by="rep-1"):
    return sales_service.record_sale(
        outlet_id,
        [{"product_id": product_id, "qty_sold": q, "unit_price_cents": 1000} for q in qtys],
        sold_by=sold_by,
    )


def test_list_sales_groups_lines_by_transaction(stocked_outlet, product):
    first = _checkout(stocked_outlet.id, product.id, [1, 2])
    second = _checkout(stocked_outlet.id, product.id, [3])

    result = reporting_service.list_sales(outlet_id=stocked_outlet.id)

    assert result["pagination"]["total"] == 2
    by_txn = {item["transaction_id"]: item for item in result["items"]}
    assert set(by_txn) == {first["transaction_id"], second["transaction_id"]}
    assert by_txn[first["transaction_id"]]["total_qty"] == 3
    assert len(by_txn[first["transaction_id"]]["lines"]) == 2
    assert by_txn[second["transaction_id"]]["total_amount_cents"] == 3000


def test_list_sales_reversal_filter(stocked_outlet, product):
    sale_id = _checkout(stocked_outlet.id, product.id, [2])["sales"][0]["id"]
    sales_service.reverse_sale(sale_id)

    with_reversals = reporting_service.list_sales()
    without = reporting_service.list_sales(include_reversals=False)

    assert with_reversals["pagination"]["total"] == 2
    assert [item["is_reversal"] for item in without["items"]] == [False]


def test_list_sales_filters_by_rep_and_paginates(stocked_outlet, product):
    for _ in range(3):
        _checkout(stocked_outlet.id, product.id, [1], sold_by="rep-1")
    _checkout(stocked_outlet.id, product.id, [1], sold_by="rep-2")

    assert reporting_service.list_sales(rep_id="rep-2")["pagination"]["total"] == 1

    page = reporting_service.list_sales(rep_id="rep-1", page=2, per_page=2)
    assert page["count"] == 1
    assert page["pagination"]["has_prev"] is True
    assert page["pagination"]["has_next"] is False


def test_list_sales_date_range(stocked_outlet, product):
    txn = _checkout(stocked_outlet.id, product.id, [1])["transaction_id"]
    # move the sale into the past
    db.session.query(Sale).filter_by(transaction_id=txn).update({Sale.sold_at: utcnow() - timedelta(days=10)})
    db.session.commit()
    _checkout(stocked_outlet.id, product.id, [1])

    today = utcnow().date().isoformat()
    assert reporting_service.list_sales(start=today, end=today)["pagination"]["total"] == 1
    assert reporting_service.list_sales()["pagination"]["total"] == 2


@pytest.mark.parametrize("start,end", [
    ("2026-02-01", "2026-01-01"),
    ("not-a-date", None),
])
def test_list_sales_rejects_bad_range(db_session, start, end):
    with pytest.raises(ValidationError):
        reporting_service.list_sales(start=start, end=end)


def test_sales_summary_by_outlet_nets_reversals(stocked_outlet, product):
    _checkout(stocked_outlet.id, product.id, [4])
    sale_id = _checkout(stocked_outlet.id, product.id, [1])["sales"][0]["id"]
    sales_service.reverse_sale(sale_id)

    summary = reporting_service.sales_summary(group_by="outlet")

    assert summary["rows"] == [{
        "outlet_id": stocked_outlet.id,
        "name": "Yaba Shop",
        "transactions": 3,
        "units": 4,
        "revenue_cents": 4000,
    }]
    assert summary["totals"] == {"units": 4, "revenue_cents": 4000}


def test_sales_summary_by_warehouse(stocked_outlet, product, warehouse):
    _checkout(stocked_outlet.id, product.id, [2])

    summary = reporting_service.sales_summary(group_by="warehouse")

    assert summary["rows"][0]["warehouse_id"] == warehouse.id
    assert summary["rows"][0]["name"] == "Central Warehouse"
    assert summary["rows"][0]["revenue_cents"] == 2000


def test_sales_summary_rejects_unknown_grouping(db_session):
    with pytest.raises(ValidationError):
        reporting_service.sales_summary(group_by="rep")
