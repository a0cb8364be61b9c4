# backend/stockline/services/deletion_service.py
"""
Cascading deletion.

Force-deleting a product, outlet or warehouse unwinds every running total
that depends on it, then removes the dependent rows. It restores structural
consistency of the current totals; it does not try to preserve historical
revenue figures.

ORDER (inside one transaction):
1. in-flight shipments touching the target are released back to their sources
2. inventory rows are purged through the movement engine
3. company/location counters are adjusted
4. dependent documents and the target itself are deleted
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError
from ..models import (
    Outlet,
    OutletInventory,
    Product,
    Sale,
    Shipment,
    ShipmentLine,
    Warehouse,
    WarehouseInventory,
)
from ..models.documents import (
    ENDPOINT_OUTLET,
    ENDPOINT_WAREHOUSE,
    SHIPMENT_STATUS_CANCELLED,
    SHIPMENT_STATUS_IN_TRANSIT,
)
from .concurrency import atomic, run_with_retry
from .inventory_service import Movement, apply_movement
from .layaway_service import cancel_open_layaways_for_outlet
from .shipment_service import _claim_transition, _release_lines

logger = logging.getLogger(__name__)


def _cancel_in_flight(shipments: list[Shipment], actor_id: str | None) -> int:
    for shipment in shipments:
        _claim_transition(shipment, SHIPMENT_STATUS_CANCELLED, actor_id)
        _release_lines(shipment)
    return len(shipments)


def _shipments_touching(endpoint_type: str, endpoint_id: str, status: str | None = None) -> list[Shipment]:
    query = db.session.query(Shipment).filter(
        db.or_(
            db.and_(Shipment.from_type == endpoint_type, Shipment.from_id == endpoint_id),
            db.and_(Shipment.to_type == endpoint_type, Shipment.to_id == endpoint_id),
        )
    )
    if status:
        query = query.filter(Shipment.status == status)
    return query.order_by(Shipment.created_at.asc(), Shipment.id.asc()).all()


def _delete_shipments(shipments: list[Shipment]) -> int:
    for shipment in shipments:
        db.session.delete(shipment)
    db.session.flush()
    return len(shipments)


def force_delete_product(product_id: str, actor_id: str | None = None) -> dict:
    """
    Remove a product from the whole network.

    Stock held anywhere (company, warehouses, outlets, in transit) is
    destroyed and removed from Company.total_stock. Sales history for the
    product is deleted; shipments keep their other lines and are deleted
    when none remain.
    """
    def _op():
        with atomic():
            product = db.session.query(Product).filter_by(id=product_id).first()
            if product is None:
                raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
            sku = product.sku

            warehouse_rows = db.session.query(WarehouseInventory).filter_by(product_id=product_id).all()
            outlet_rows = db.session.query(OutletInventory).filter_by(product_id=product_id).all()
            warehouse_ids = [r.warehouse_id for r in warehouse_rows]
            outlet_ids = [r.outlet_id for r in outlet_rows]

            for outlet_id in outlet_ids:
                apply_movement(Movement.inventory_row_purge(ENDPOINT_OUTLET, outlet_id, product_id))
            for warehouse_id in warehouse_ids:
                apply_movement(Movement.inventory_row_purge(ENDPOINT_WAREHOUSE, warehouse_id, product_id))
            apply_movement(Movement.product_force_delete(product_id))

            sales_deleted = (
                db.session.query(Sale)
                .filter(Sale.product_id == product_id)
                .delete(synchronize_session="fetch")
            )

            lines = db.session.query(ShipmentLine).filter_by(product_id=product_id).all()
            touched_ids = {line.shipment_id for line in lines}
            for line in lines:
                line.shipment.lines.remove(line)
            db.session.flush()

            emptied = [
                s for s in db.session.query(Shipment).filter(Shipment.id.in_(touched_ids)).all()
                if not s.lines
            ] if touched_ids else []
            shipments_deleted = _delete_shipments(emptied)

            db.session.delete(product)
            db.session.flush()

            summary = {
                "product_id": product_id,
                "warehouse_rows_purged": len(warehouse_ids),
                "outlet_rows_purged": len(outlet_ids),
                "sales_deleted": sales_deleted,
                "shipment_lines_removed": len(lines),
                "shipments_deleted": shipments_deleted,
            }
        logger.info("Product %s (%s) force-deleted by %s: %s", product_id, sku, actor_id, summary)
        return summary

    return run_with_retry(_op)


def _delete_outlet_inner(outlet: Outlet, actor_id: str | None) -> dict:
    in_flight = _shipments_touching(ENDPOINT_OUTLET, outlet.id, SHIPMENT_STATUS_IN_TRANSIT)
    cancelled = _cancel_in_flight(in_flight, actor_id)

    product_ids = [
        pid for (pid,) in db.session.query(OutletInventory.product_id).filter_by(outlet_id=outlet.id).all()
    ]
    for product_id in product_ids:
        apply_movement(Movement.inventory_row_purge(ENDPOINT_OUTLET, outlet.id, product_id))

    layaways_cancelled = cancel_open_layaways_for_outlet(outlet.id)
    shipments_deleted = _delete_shipments(_shipments_touching(ENDPOINT_OUTLET, outlet.id))

    apply_movement(Movement.entity_count(ENDPOINT_OUTLET, outlet.id, -1, warehouse_id=outlet.warehouse_id))

    db.session.delete(outlet)
    db.session.flush()
    return {
        "outlet_id": outlet.id,
        "shipments_cancelled": cancelled,
        "inventory_rows_purged": len(product_ids),
        "layaways_cancelled": layaways_cancelled,
        "shipments_deleted": shipments_deleted,
    }


def delete_outlet(outlet_id: str, actor_id: str | None = None) -> dict:
    """
    Delete an outlet. Shipments in transit to it are cancelled (stock returns
    to the sender), its stock is destroyed and open layaways are cancelled.
    Sales history is kept.
    """
    def _op():
        with atomic():
            outlet = db.session.query(Outlet).filter_by(id=outlet_id).first()
            if outlet is None:
                raise NotFoundError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
            summary = _delete_outlet_inner(outlet, actor_id)
        logger.info("Outlet %s deleted by %s: %s", outlet_id, actor_id, summary)
        return summary

    return run_with_retry(_op)


def delete_warehouse(warehouse_id: str, actor_id: str | None = None) -> dict:
    """
    Delete a warehouse and every outlet under it.

    Shipments in transit to or from the warehouse are cancelled first, so
    stock it had sent comes back and is destroyed with its inventory rows.
    """
    def _op():
        with atomic():
            warehouse = db.session.query(Warehouse).filter_by(id=warehouse_id).first()
            if warehouse is None:
                raise NotFoundError(f"Warehouse {warehouse_id} not found", details={"warehouse_id": warehouse_id})

            in_flight = _shipments_touching(ENDPOINT_WAREHOUSE, warehouse_id, SHIPMENT_STATUS_IN_TRANSIT)
            cancelled = _cancel_in_flight(in_flight, actor_id)

            outlets = (
                db.session.query(Outlet)
                .filter_by(warehouse_id=warehouse_id)
                .order_by(Outlet.id.asc())
                .all()
            )
            outlet_summaries = [_delete_outlet_inner(outlet, actor_id) for outlet in outlets]

            product_ids = [
                pid for (pid,) in db.session.query(WarehouseInventory.product_id)
                .filter_by(warehouse_id=warehouse_id).all()
            ]
            for product_id in product_ids:
                apply_movement(Movement.inventory_row_purge(ENDPOINT_WAREHOUSE, warehouse_id, product_id))

            shipments_deleted = _delete_shipments(_shipments_touching(ENDPOINT_WAREHOUSE, warehouse_id))
            apply_movement(Movement.entity_count(ENDPOINT_WAREHOUSE, warehouse_id, -1))

            db.session.delete(warehouse)
            db.session.flush()

            summary = {
                "warehouse_id": warehouse_id,
                "shipments_cancelled": cancelled,
                "outlets_deleted": len(outlet_summaries),
                "inventory_rows_purged": len(product_ids),
                "shipments_deleted": shipments_deleted,
            }
        logger.info("Warehouse %s deleted by %s: %s", warehouse_id, actor_id, summary)
        return summary

    return run_with_retry(_op)
