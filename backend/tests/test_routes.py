"""
HTTP API tests: status codes, JSON error shape and an end-to-end flow
from bootstrap to reports through the client.
"""

import pytest

from stockline.extensions import db
from stockline.models import Company


def _post(client, url, payload=None):
    return client.post(url, json=payload or {})


@pytest.fixture
def network(client, db_session):
    """Company, one product, one warehouse and one outlet, created over HTTP."""
    assert _post(client, "/api/company", {
        "name": "Acme Distribution", "location": "Lagos", "admin_id": "admin-1", "admin_name": "Ada Admin",
    }).status_code == 201
    product = _post(client, "/api/products", {
        "sku": "SKU-001", "name": "Widget", "unit_price_cents": 1000, "qty": 100,
    }).get_json()
    warehouse = _post(client, "/api/warehouses", {"name": "Central Warehouse", "location": "Ikeja"}).get_json()
    outlet = _post(client, "/api/outlets", {
        "name": "Yaba Shop", "location": "Yaba", "warehouse_id": warehouse["id"],
        "rep_ids": ["rep-1"], "rep_names": ["Rita Rep"],
    }).get_json()
    return {"product": product, "warehouse": warehouse, "outlet": outlet}


def _ship(client, from_type, from_id, to_type, to_id, product_id, qty):
    resp = _post(client, "/api/shipments", {
        "from_type": from_type, "from_id": from_id, "to_type": to_type, "to_id": to_id,
        "lines": [{"product_id": product_id, "qty": qty}],
    })
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_health_without_company_is_degraded(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "degraded"
    assert body["checks"]["database"]["status"] == "healthy"


def test_error_shape(client, db_session):
    resp = client.get("/api/products/missing")
    assert resp.status_code == 404
    body = resp.get_json()
    assert set(body) == {"error", "message", "details"}
    assert body["error"] == "not_found"


def test_company_bootstrap_once(client, network):
    resp = _post(client, "/api/company", {
        "name": "Again", "location": "Abuja", "admin_id": "admin-2", "admin_name": "B",
    })
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "conflict"

    assert client.get("/api/company").get_json()["total_products"] == 1


def test_bootstrap_missing_fields(client, db_session):
    resp = _post(client, "/api/company", {"name": "Acme"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_product_payload_validation(client, network):
    resp = _post(client, "/api/products", {"sku": "SKU-9", "name": "Bad", "unit_price_cents": "12.5"})
    assert resp.status_code == 400

    resp = _post(client, "/api/products", {"sku": "SKU-001", "name": "Dup", "unit_price_cents": 10})
    assert resp.status_code == 409

    resp = client.put(f"/api/products/{network['product']['id']}", json={"unit_price_cents": 0})
    assert resp.status_code == 400


def test_end_to_end_flow(client, network):
    product_id = network["product"]["id"]
    warehouse_id = network["warehouse"]["id"]
    outlet_id = network["outlet"]["id"]

    to_warehouse = _ship(client, "Company", None, "Warehouse", warehouse_id, product_id, 40)
    assert to_warehouse["status"] == "IN_TRANSIT"
    resp = _post(client, f"/api/shipments/{to_warehouse['id']}/receive", {"actor_id": "wh-1"})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "RECEIVED"

    # second receive is rejected
    resp = _post(client, f"/api/shipments/{to_warehouse['id']}/receive")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_processed"

    to_outlet = _ship(client, "Warehouse", warehouse_id, "Outlet", outlet_id, product_id, 20)
    assert _post(client, f"/api/shipments/{to_outlet['id']}/receive").status_code == 200

    inventory = client.get(f"/api/outlets/{outlet_id}/inventory").get_json()
    assert inventory["total_qty"] == 20

    resp = _post(client, "/api/sales", {
        "outlet_id": outlet_id, "sold_by": "rep-1",
        "lines": [{"product_id": product_id, "qty_sold": "5", "unit_price_cents": 1000}],
    })
    assert resp.status_code == 201
    sale = resp.get_json()
    assert sale["total_amount_cents"] == 5000

    resp = _post(client, "/api/sales", {
        "outlet_id": outlet_id,
        "lines": [{"product_id": product_id, "qty_sold": 99, "unit_price_cents": 1000}],
    })
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "insufficient_stock"
    assert resp.get_json()["details"]["available"] == 15

    resp = client.get(f"/api/transactions/{sale['transaction_id']}")
    assert resp.status_code == 200

    sale_id = sale["sales"][0]["id"]
    assert _post(client, f"/api/sales/{sale_id}/reverse", {"actor_id": "admin-1"}).status_code == 201
    resp = _post(client, f"/api/sales/{sale_id}/reverse")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_reversed"

    listing = client.get("/api/sales?include_reversals=false").get_json()
    assert listing["pagination"]["total"] == 1

    summary = client.get("/api/reports/sales-summary?group_by=outlet").get_json()
    assert summary["totals"] == {"units": 0, "revenue_cents": 0}

    resp = client.get("/api/system/consistency")
    assert resp.status_code == 200
    assert resp.get_json() == {"consistent": True, "issues": []}

    db.session.expire_all()
    company = db.session.query(Company).one()
    assert company.total_stock == 100
    assert company.total_shipments == 2


def test_shipment_unknown_action(client, network):
    shipment = _ship(client, "Company", None, "Warehouse", network["warehouse"]["id"], network["product"]["id"], 1)
    resp = _post(client, f"/api/shipments/{shipment['id']}/explode")
    assert resp.status_code == 400


def test_shipment_lines_must_be_integers(client, network):
    resp = _post(client, "/api/shipments", {
        "from_type": "Company", "to_type": "Warehouse", "to_id": network["warehouse"]["id"],
        "lines": [{"product_id": network["product"]["id"], "qty": 1.5}],
    })
    assert resp.status_code == 400


def test_layaway_over_http(client, network, ship):
    outlet_id = network["outlet"]["id"]
    product_id = network["product"]["id"]
    ship("Company", None, "Outlet", outlet_id, product_id, 5)

    resp = _post(client, "/api/layaways", {
        "outlet_id": outlet_id, "rep_id": "rep-1",
        "items": [{"product_id": product_id, "qty": 2, "unit_price_cents": 500}],
        "paid_now": 400,
    })
    assert resp.status_code == 201
    layaway = resp.get_json()

    resp = _post(client, f"/api/layaways/{layaway['id']}/complete")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "outstanding_balance"

    resp = _post(client, f"/api/layaways/{layaway['id']}/payments", {"amount_cents": 600, "method": "transfer"})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "full_paid_pending_pickup"

    resp = _post(client, f"/api/layaways/{layaway['id']}/complete")
    assert resp.status_code == 200

    resp = _post(client, f"/api/layaways/{layaway['id']}/complete")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_completed"


def test_delete_outlet_over_http(client, network):
    outlet_id = network["outlet"]["id"]
    resp = client.delete(f"/api/outlets/{outlet_id}?actor_id=admin-1")
    assert resp.status_code == 200
    assert resp.get_json()["outlet_id"] == outlet_id

    assert client.get(f"/api/outlets/{outlet_id}").status_code == 404
    assert client.get("/api/company").get_json()["total_outlets"] == 0


def test_force_delete_product_over_http(client, network):
    product_id = network["product"]["id"]
    resp = client.delete(f"/api/products/{product_id}")
    assert resp.status_code == 200
    assert client.get(f"/api/products/{product_id}").status_code == 404
    assert client.get("/api/system/consistency").get_json()["consistent"] is True


def test_consistency_endpoint_reports_issues(client, network):
    db.session.query(Company).update({Company.total_stock: 1})
    db.session.commit()

    resp = client.get("/api/system/consistency")
    assert resp.status_code == 409
    assert resp.get_json()["consistent"] is False


def test_report_bad_grouping(client, db_session):
    resp = client.get("/api/reports/sales-summary?group_by=rep")
    assert resp.status_code == 400
