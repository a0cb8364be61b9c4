"""
Shipment state machine tests.

Covers the company -> warehouse -> outlet scenarios, stock conservation,
single approval, release on reject/cancel and administrative edits.
"""

import pytest

from stockline.errors import (
    AlreadyProcessed,
    InsufficientStockError,
    InvalidStateTransition,
    ValidationError,
)
from stockline.extensions import db
from stockline.models import (
    Company,
    CompanyProduct,
    Outlet,
    OutletInventory,
    Product,
    Shipment,
    Warehouse,
    WarehouseInventory,
)
from stockline.services import audit_service, shipment_service
from stockline.services.concurrency import atomic


def _company():
    return db.session.query(Company).one()


def _wi(warehouse_id, product_id):
    return db.session.query(WarehouseInventory).filter_by(warehouse_id=warehouse_id, product_id=product_id).first()


def _oi(outlet_id, product_id):
    return db.session.query(OutletInventory).filter_by(outlet_id=outlet_id, product_id=product_id).first()


def _create(from_type, from_id, to_type, to_id, lines):
    return shipment_service.create_shipment(
        from_id=from_id, to_id=to_id, from_type=from_type, to_type=to_type, lines=lines,
    )


class TestCompanyToWarehouse:
    def test_dispatch_reserves_company_stock(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 40}])

        assert shipment.status == "IN_TRANSIT"
        assert shipment.from_id == _company().id
        assert db.session.get(Product, product.id).qty == 60
        assert _company().in_transit == 40
        assert _company().total_stock == 100
        snapshot = db.session.query(CompanyProduct).filter_by(product_id=product.id).one()
        assert snapshot.qty == 60
        assert snapshot.in_transit == 40

    def test_receive_moves_reserve_into_warehouse(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 40}])
        shipment_service.receive_shipment(shipment.id, actor_id="w-manager")

        row = _wi(warehouse.id, product.id)
        assert row.qty == 40
        assert row.total_received == 40
        assert row.unit_price_cents == 1000
        assert _company().in_transit == 0
        assert _company().total_shipments == 1

        w = db.session.get(Warehouse, warehouse.id)
        assert w.total_stock == 40
        assert w.total_products == 1
        assert w.total_shipments == 1
        assert audit_service.check_consistency() == []

    def test_receive_records_processor(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 1}])
        shipment_service.receive_shipment(shipment.id, actor_id="w-manager")

        stored = db.session.get(Shipment, shipment.id)
        assert stored.status == "RECEIVED"
        assert stored.processed_by == "w-manager"
        assert stored.processed_at is not None


class TestWarehouseToOutlet:
    def test_scenario_ship_twenty_of_forty(self, product, warehouse, outlet, ship):
        ship("Company", None, "Warehouse", warehouse.id, product.id, 40)

        shipment = _create("Warehouse", warehouse.id, "Outlet", outlet.id, [{"product_id": product.id, "qty": 20}])
        assert _wi(warehouse.id, product.id).qty == 20
        assert _wi(warehouse.id, product.id).in_transit == 20
        assert db.session.get(Warehouse, warehouse.id).total_stock == 20

        shipment_service.receive_shipment(shipment.id)

        wi = _wi(warehouse.id, product.id)
        assert wi.qty == 20
        assert wi.in_transit == 0
        assert wi.total_shipped == 20
        oi = _oi(outlet.id, product.id)
        assert oi.qty == 20
        assert oi.warehouse_id == warehouse.id
        assert db.session.get(Outlet, outlet.id).total_stock == 20
        assert db.session.get(Outlet, outlet.id).total_products == 1
        assert _company().total_stock == 100
        assert audit_service.check_consistency() == []

    def test_company_to_outlet_uses_parent_as_provenance(self, product, warehouse, outlet, ship):
        ship("Company", None, "Outlet", outlet.id, product.id, 5)

        oi = _oi(outlet.id, product.id)
        assert oi.qty == 5
        assert oi.warehouse_id == warehouse.id
        assert audit_service.check_consistency() == []

    def test_warehouse_to_warehouse(self, product, warehouse, second_warehouse, ship):
        ship("Company", None, "Warehouse", warehouse.id, product.id, 30)
        ship("Warehouse", warehouse.id, "Warehouse", second_warehouse.id, product.id, 10)

        assert _wi(warehouse.id, product.id).qty == 20
        assert _wi(second_warehouse.id, product.id).qty == 10
        assert db.session.get(Warehouse, warehouse.id).total_shipments == 2
        assert db.session.get(Warehouse, second_warehouse.id).total_shipments == 1
        assert audit_service.check_consistency() == []


def test_stock_conservation_across_lines(product, other_product, warehouse):
    before = _company().total_stock
    shipment = _create("Company", None, "Warehouse", warehouse.id, [
        {"product_id": product.id, "qty": 10},
        {"product_id": other_product.id, "qty": 15},
    ])
    shipment_service.receive_shipment(shipment.id)

    assert db.session.get(Product, product.id).qty + _wi(warehouse.id, product.id).qty == 100
    assert db.session.get(Product, other_product.id).qty + _wi(warehouse.id, other_product.id).qty == 40
    assert _company().total_stock == before
    assert db.session.get(Warehouse, warehouse.id).total_products == 2


def test_two_shipments_same_product_create_one_outlet_row(stocked_outlet, product, warehouse):
    first = _create("Warehouse", warehouse.id, "Outlet", stocked_outlet.id, [{"product_id": product.id, "qty": 3}])
    second = _create("Warehouse", warehouse.id, "Outlet", stocked_outlet.id, [{"product_id": product.id, "qty": 4}])
    shipment_service.receive_shipment(first.id)
    shipment_service.receive_shipment(second.id)

    rows = db.session.query(OutletInventory).filter_by(outlet_id=stocked_outlet.id, product_id=product.id).all()
    assert len(rows) == 1
    assert rows[0].qty == 27
    assert db.session.get(Outlet, stocked_outlet.id).total_products == 1


def test_first_receive_into_new_outlet_creates_single_row(product, warehouse, outlet, ship):
    ship("Company", None, "Warehouse", warehouse.id, product.id, 30)
    a = _create("Warehouse", warehouse.id, "Outlet", outlet.id, [{"product_id": product.id, "qty": 5}])
    b = _create("Warehouse", warehouse.id, "Outlet", outlet.id, [{"product_id": product.id, "qty": 6}])
    shipment_service.receive_shipment(a.id)
    shipment_service.receive_shipment(b.id)

    assert db.session.query(OutletInventory).filter_by(outlet_id=outlet.id).count() == 1
    assert _oi(outlet.id, product.id).qty == 11


class TestSingleApproval:
    def test_second_receive_is_already_processed(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        shipment_service.receive_shipment(shipment.id)

        with pytest.raises(AlreadyProcessed):
            shipment_service.receive_shipment(shipment.id)

        assert _wi(warehouse.id, product.id).qty == 10
        assert _company().total_shipments == 1

    def test_losing_claim_raises_already_processed(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        stale = db.session.get(Shipment, shipment.id)

        shipment_service.receive_shipment(shipment.id)

        with pytest.raises(AlreadyProcessed):
            with atomic():
                shipment_service._claim_transition(stale, "RECEIVED", "late-approver")
        assert _wi(warehouse.id, product.id).qty == 10

    def test_receive_after_cancel_is_invalid(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        shipment_service.cancel_shipment(shipment.id)

        with pytest.raises(InvalidStateTransition) as exc:
            shipment_service.receive_shipment(shipment.id)
        assert not isinstance(exc.value, AlreadyProcessed)

    def test_unknown_action(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 1}])
        with pytest.raises(ValidationError):
            shipment_service.transition_shipment(shipment.id, "approve")


@pytest.mark.parametrize("action", ["reject", "cancel"])
def test_release_returns_company_stock(product, warehouse, action):
    shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 25}])
    shipment_service.transition_shipment(shipment.id, action, actor_id="someone")

    assert db.session.get(Product, product.id).qty == 100
    assert _company().in_transit == 0
    assert _wi(warehouse.id, product.id) is None
    assert _company().total_shipments == 0
    assert audit_service.check_consistency() == []


def test_reject_returns_warehouse_stock(stocked_outlet, product, warehouse):
    shipment = _create("Warehouse", warehouse.id, "Outlet", stocked_outlet.id, [{"product_id": product.id, "qty": 8}])
    assert db.session.get(Warehouse, warehouse.id).total_stock == 12

    shipment_service.reject_shipment(shipment.id, actor_id="outlet-rep")

    wi = _wi(warehouse.id, product.id)
    assert wi.qty == 20
    assert wi.in_transit == 0
    assert db.session.get(Warehouse, warehouse.id).total_stock == 20
    assert _oi(stocked_outlet.id, product.id).qty == 20


class TestCreateValidation:
    def test_insufficient_source_stock_changes_nothing(self, product, warehouse):
        with pytest.raises(InsufficientStockError) as exc:
            _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 101}])

        assert exc.value.available == 100
        assert db.session.get(Product, product.id).qty == 100
        assert _company().in_transit == 0
        assert db.session.query(Shipment).count() == 0

    def test_warehouse_without_row_has_no_stock(self, product, warehouse, second_warehouse):
        with pytest.raises(InsufficientStockError):
            _create("Warehouse", warehouse.id, "Warehouse", second_warehouse.id, [{"product_id": product.id, "qty": 1}])

    def test_self_shipment_rejected(self, product, warehouse):
        with pytest.raises(ValidationError):
            _create("Warehouse", warehouse.id, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 1}])

    def test_duplicate_product_lines_rejected(self, product, warehouse):
        with pytest.raises(ValidationError):
            _create("Company", None, "Warehouse", warehouse.id, [
                {"product_id": product.id, "qty": 1},
                {"product_id": product.id, "qty": 2},
            ])

    @pytest.mark.parametrize("qty", [0, -3, "4", 1.5, True])
    def test_bad_qty_rejected(self, product, warehouse, qty):
        with pytest.raises(ValidationError):
            _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": qty}])

    def test_outlet_cannot_be_a_source(self, product, outlet, warehouse):
        with pytest.raises(ValidationError):
            _create("Outlet", outlet.id, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 1}])

    def test_unknown_destination(self, product):
        with pytest.raises(ValidationError):
            _create("Company", None, "Warehouse", "nowhere", [{"product_id": product.id, "qty": 1}])

    def test_empty_lines(self, product, warehouse):
        with pytest.raises(ValidationError):
            _create("Company", None, "Warehouse", warehouse.id, [])


class TestEdit:
    def test_edit_lines_re_reserves(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        shipment_service.edit_shipment(shipment.id, lines=[{"product_id": product.id, "qty": 35}])

        assert db.session.get(Product, product.id).qty == 65
        assert _company().in_transit == 35
        assert db.session.get(Shipment, shipment.id).total_qty == 35
        assert audit_service.check_consistency() == []

    def test_edit_beyond_stock_keeps_original(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        with pytest.raises(InsufficientStockError):
            shipment_service.edit_shipment(shipment.id, lines=[{"product_id": product.id, "qty": 150}])

        assert db.session.get(Product, product.id).qty == 90
        assert _company().in_transit == 10
        assert db.session.get(Shipment, shipment.id).total_qty == 10

    def test_edit_destination(self, product, warehouse, second_warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        shipment_service.edit_shipment(shipment.id, to_id=second_warehouse.id)
        shipment_service.receive_shipment(shipment.id)

        assert _wi(warehouse.id, product.id) is None
        assert _wi(second_warehouse.id, product.id).qty == 10
        assert db.session.get(Shipment, shipment.id).to_name == "North Warehouse"

    def test_edit_terminal_shipment_rejected(self, product, warehouse):
        shipment = _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 10}])
        shipment_service.receive_shipment(shipment.id)
        with pytest.raises(InvalidStateTransition):
            shipment_service.edit_shipment(shipment.id, lines=[{"product_id": product.id, "qty": 5}])


def test_list_shipments_filters_by_endpoint(product, warehouse, second_warehouse):
    _create("Company", None, "Warehouse", warehouse.id, [{"product_id": product.id, "qty": 1}])
    _create("Company", None, "Warehouse", second_warehouse.id, [{"product_id": product.id, "qty": 1}])

    result = shipment_service.list_shipments(endpoint_id=warehouse.id)
    assert result["count"] == 1
    assert result["items"][0]["to"]["id"] == warehouse.id

    paged = shipment_service.list_shipments(status="IN_TRANSIT", page=1, per_page=1)
    assert paged["pagination"]["total"] == 2
    assert paged["pagination"]["has_next"] is True
