"""
Pytest fixtures for Stockline backend tests.

Provides an in-memory application, a per-test table wipe and a small
seeded network (company, product, warehouse, outlet) built through the
services so every running total starts consistent.
"""

import pytest
from stockline import create_app
from stockline.extensions import db
from stockline.services import company_service, location_service, products_service, shipment_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCKLINE_RETRY_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company(db_session):
    """Bootstrap the single Company."""
    return company_service.bootstrap_company(
        name="Acme Distribution",
        location="Lagos",
        admin_id="admin-1",
        admin_name="Ada Admin",
    )


@pytest.fixture(scope='function')
def product(company):
    """Product P: 100 units at the company, 1000 cents each."""
    return products_service.create_product(patch={
        "sku": "SKU-001",
        "name": "Widget",
        "unit_price_cents": 1000,
        "qty": 100,
    })


@pytest.fixture(scope='function')
def other_product(company):
    return products_service.create_product(patch={
        "sku": "SKU-002",
        "name": "Gadget",
        "unit_price_cents": 250,
        "qty": 40,
    })


@pytest.fixture(scope='function')
def warehouse(company):
    return location_service.create_warehouse({"name": "Central Warehouse", "location": "Ikeja"})


@pytest.fixture(scope='function')
def second_warehouse(company):
    return location_service.create_warehouse({"name": "North Warehouse", "location": "Kano"})


@pytest.fixture(scope='function')
def outlet(warehouse):
    return location_service.create_outlet(
        {"name": "Yaba Shop", "location": "Yaba", "warehouse_id": warehouse.id},
        rep_ids=["rep-1"],
        rep_names=["Rita Rep"],
    )


def ship_and_receive(from_type, from_id, to_type, to_id, product_id, qty):
    """Create a shipment for one product line and receive it."""
    shipment = shipment_service.create_shipment(
        from_id=from_id,
        to_id=to_id,
        from_type=from_type,
        to_type=to_type,
        lines=[{"product_id": product_id, "qty": qty}],
    )
    return shipment_service.receive_shipment(shipment.id, actor_id="receiver-1")


@pytest.fixture(scope='function')
def ship(db_session):
    """Helper fixture: ship one product line and receive it."""
    return ship_and_receive


@pytest.fixture(scope='function')
def stocked_outlet(product, warehouse, outlet):
    """
    Company -> warehouse 40 units, warehouse -> outlet 20 units, both received.

    Leaves: product 60, warehouse 20, outlet 20.
    """
    ship_and_receive("Company", None, "Warehouse", warehouse.id, product.id, 40)
    ship_and_receive("Warehouse", warehouse.id, "Outlet", outlet.id, product.id, 20)
    return outlet
