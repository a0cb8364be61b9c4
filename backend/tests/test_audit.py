"""
Consistency audit tests: a clean ledger reports nothing, tampered
counters are named.
"""

from stockline.extensions import db
from stockline.models import Company, CompanyProduct, Outlet, WarehouseInventory
from stockline.services import audit_service, shipment_service


def _checks(issues):
    return {issue["check"] for issue in issues}


def test_missing_company(db_session):
    assert _checks(audit_service.check_consistency()) == {"company_missing"}


def test_clean_ledger_with_shipments_in_flight(stocked_outlet, product, other_product, warehouse, second_warehouse):
    shipment_service.create_shipment(
        from_id=None, to_id=second_warehouse.id, from_type="Company", to_type="Warehouse",
        lines=[{"product_id": other_product.id, "qty": 4}],
    )
    shipment_service.create_shipment(
        from_id=warehouse.id, to_id=second_warehouse.id, from_type="Warehouse", to_type="Warehouse",
        lines=[{"product_id": product.id, "qty": 3}],
    )

    assert audit_service.check_consistency() == []


def test_detects_conservation_break(product):
    db.session.query(Company).update({Company.total_stock: Company.total_stock + 1})
    db.session.commit()

    issues = audit_service.check_consistency()
    assert _checks(issues) == {"stock_conservation"}
    assert issues[0]["details"]["total_stock"] == 101


def test_detects_in_transit_drift(stocked_outlet, product, warehouse):
    db.session.query(WarehouseInventory).filter_by(warehouse_id=warehouse.id).update(
        {WarehouseInventory.in_transit: 2}
    )
    db.session.commit()

    checks = _checks(audit_service.check_consistency())
    assert "warehouse_in_transit" in checks
    assert "stock_conservation" in checks


def test_detects_outlet_total_drift(stocked_outlet):
    db.session.query(Outlet).filter_by(id=stocked_outlet.id).update({Outlet.total_stock: 5})
    db.session.commit()

    issues = audit_service.check_consistency()
    assert _checks(issues) == {"outlet_stock"}
    assert issues[0]["details"]["expected"] == 20


def test_detects_snapshot_drift(product):
    db.session.query(CompanyProduct).filter_by(product_id=product.id).update({CompanyProduct.name: "Stale"})
    db.session.commit()

    issues = audit_service.check_consistency()
    assert _checks(issues) == {"snapshot_drift"}
    assert "name" in issues[0]["details"]["fields"]
