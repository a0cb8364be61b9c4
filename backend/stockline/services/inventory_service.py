# Overview: Inventory movement engine; applies one line-item move across every aggregate it touches.

# backend/stockline/services/inventory_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..extensions import db
from ..errors import ConsistencyError, InsufficientStockError, NotFoundError, ValidationError
from ..models import CompanyProduct, Outlet, OutletInventory, Product, WarehouseInventory
from ..models.documents import (
    ENDPOINT_COMPANY,
    ENDPOINT_OUTLET,
    ENDPOINT_WAREHOUSE,
)
from . import ledger_service as ledger

logger = logging.getLogger(__name__)

ENTITY_PRODUCT = "Product"

"""
Stockline Stock & Revenue Invariants (authoritative)

Conservation:
- Company.total_stock == SUM(Product.qty) + SUM(WarehouseInventory.qty)
  + SUM(OutletInventory.qty) + Company.in_transit + SUM(WarehouseInventory.in_transit)
- Dispatch moves units from a source's qty into its in_transit reserve;
  receive moves them from that reserve into the destination's qty. Neither
  changes Company.total_stock. Only sales, restocks and deletions do.

Non-negative:
- qty and in_transit are guarded inside the UPDATE itself; an operation that
  would drive either below zero aborts the whole transaction.

Topology:
- Every mutation of a running total goes through apply_movement().
  That includes the product, warehouse and outlet counts (ENTITY_COUNT).
  Company.total_workers is an administrator-set headcount and the catalogue
  snapshot fields (sku, name, price) are plain assignments; neither is a
  running total.
- Each MovementKind has a fixed, ordered list of touched aggregates:
  inventory rows, then outlet/warehouse totals, then company totals.
"""


class MovementKind(str, Enum):
    OUTLET_SALE = "outlet_sale"
    OUTLET_SALE_REVERSAL = "outlet_sale_reversal"
    SHIPMENT_DISPATCH = "shipment_dispatch"
    SHIPMENT_RELEASE = "shipment_release"
    SHIPMENT_RECEIVE = "shipment_receive"
    COMPANY_RESTOCK = "company_restock"
    INVENTORY_ROW_PURGE = "inventory_row_purge"
    PRODUCT_FORCE_DELETE = "product_force_delete"
    ENTITY_COUNT = "entity_count"


# Touched aggregates, in application order, keyed by (kind, variant).
# Variant is the source type for dispatch/release, "source->destination"
# for receive and the location type for row purges.
MOVEMENT_TOUCHES: dict[tuple[MovementKind, str | None], tuple[str, ...]] = {
    (MovementKind.OUTLET_SALE, None): (
        "outlet_inventory", "warehouse_inventory", "outlet", "warehouse", "company",
    ),
    (MovementKind.OUTLET_SALE_REVERSAL, None): (
        "outlet_inventory", "warehouse_inventory", "outlet", "warehouse", "company",
    ),
    (MovementKind.SHIPMENT_DISPATCH, ENDPOINT_COMPANY): ("product", "company_product", "company"),
    (MovementKind.SHIPMENT_DISPATCH, ENDPOINT_WAREHOUSE): ("warehouse_inventory", "warehouse"),
    (MovementKind.SHIPMENT_RELEASE, ENDPOINT_COMPANY): ("product", "company_product", "company"),
    (MovementKind.SHIPMENT_RELEASE, ENDPOINT_WAREHOUSE): ("warehouse_inventory", "warehouse"),
    (MovementKind.SHIPMENT_RECEIVE, "Company->Warehouse"): (
        "warehouse_inventory", "company_product", "warehouse", "company",
    ),
    (MovementKind.SHIPMENT_RECEIVE, "Company->Outlet"): (
        "outlet_inventory", "company_product", "outlet", "company",
    ),
    (MovementKind.SHIPMENT_RECEIVE, "Warehouse->Warehouse"): (
        "warehouse_inventory", "warehouse_inventory", "warehouse",
    ),
    (MovementKind.SHIPMENT_RECEIVE, "Warehouse->Outlet"): (
        "outlet_inventory", "warehouse_inventory", "outlet",
    ),
    (MovementKind.COMPANY_RESTOCK, None): ("product", "company_product", "company"),
    (MovementKind.INVENTORY_ROW_PURGE, ENDPOINT_WAREHOUSE): ("warehouse_inventory", "warehouse", "company"),
    (MovementKind.INVENTORY_ROW_PURGE, ENDPOINT_OUTLET): ("outlet_inventory", "outlet", "company"),
    (MovementKind.PRODUCT_FORCE_DELETE, None): ("company_product", "company"),
    (MovementKind.ENTITY_COUNT, ENTITY_PRODUCT): ("company",),
    (MovementKind.ENTITY_COUNT, ENDPOINT_WAREHOUSE): ("company",),
    (MovementKind.ENTITY_COUNT, ENDPOINT_OUTLET): ("warehouse", "company"),
}


@dataclass(frozen=True)
class Movement:
    """
    One line-item move. qty and amount_cents are always non-negative;
    the kind decides the sign of every delta.
    """
    kind: MovementKind
    product_id: str | None
    qty: int = 0
    amount_cents: int = 0
    source_type: str | None = None
    source_id: str | None = None
    destination_type: str | None = None
    destination_id: str | None = None
    sku: str | None = None
    name: str | None = None
    unit_price_cents: int | None = None

    @classmethod
    def outlet_sale(
        cls, outlet_id: str, product_id: str, qty: int, amount_cents: int,
        revenue_warehouse_id: str | None = None,
    ) -> "Movement":
        """revenue_warehouse_id is the warehouse whose inventory row is credited with the revenue."""
        return cls(MovementKind.OUTLET_SALE, product_id, qty, amount_cents,
                   source_type=ENDPOINT_WAREHOUSE, source_id=revenue_warehouse_id,
                   destination_type=ENDPOINT_OUTLET, destination_id=outlet_id)

    @classmethod
    def outlet_sale_reversal(
        cls, outlet_id: str, product_id: str, qty: int, amount_cents: int,
        revenue_warehouse_id: str | None = None,
    ) -> "Movement":
        return cls(MovementKind.OUTLET_SALE_REVERSAL, product_id, qty, amount_cents,
                   source_type=ENDPOINT_WAREHOUSE, source_id=revenue_warehouse_id,
                   destination_type=ENDPOINT_OUTLET, destination_id=outlet_id)

    @classmethod
    def _for_shipment_line(cls, kind: MovementKind, shipment, line) -> "Movement":
        return cls(
            kind,
            line.product_id,
            line.qty,
            line.qty * line.unit_price_cents,
            source_type=shipment.from_type,
            source_id=shipment.from_id,
            destination_type=shipment.to_type,
            destination_id=shipment.to_id,
            sku=line.sku,
            name=line.name,
            unit_price_cents=line.unit_price_cents,
        )

    @classmethod
    def shipment_dispatch(cls, shipment, line) -> "Movement":
        return cls._for_shipment_line(MovementKind.SHIPMENT_DISPATCH, shipment, line)

    @classmethod
    def shipment_release(cls, shipment, line) -> "Movement":
        return cls._for_shipment_line(MovementKind.SHIPMENT_RELEASE, shipment, line)

    @classmethod
    def shipment_receive(cls, shipment, line) -> "Movement":
        return cls._for_shipment_line(MovementKind.SHIPMENT_RECEIVE, shipment, line)

    @classmethod
    def company_restock(cls, product_id: str, qty: int) -> "Movement":
        """qty may be negative here: a catalogue correction that removes stock."""
        return cls(MovementKind.COMPANY_RESTOCK, product_id, qty)

    @classmethod
    def inventory_row_purge(cls, location_type: str, location_id: str, product_id: str) -> "Movement":
        return cls(MovementKind.INVENTORY_ROW_PURGE, product_id,
                   destination_type=location_type, destination_id=location_id)

    @classmethod
    def product_force_delete(cls, product_id: str) -> "Movement":
        return cls(MovementKind.PRODUCT_FORCE_DELETE, product_id)

    @classmethod
    def entity_count(
        cls, entity_type: str, entity_id: str, delta: int, warehouse_id: str | None = None,
    ) -> "Movement":
        """delta is +1 when the entity is created and -1 when it is deleted; outlets name their warehouse."""
        return cls(
            MovementKind.ENTITY_COUNT,
            entity_id if entity_type == ENTITY_PRODUCT else None,
            delta,
            source_type=ENDPOINT_WAREHOUSE if warehouse_id else None,
            source_id=warehouse_id,
            destination_type=entity_type,
            destination_id=entity_id,
        )

    @property
    def variant(self) -> str | None:
        if self.kind in (MovementKind.SHIPMENT_DISPATCH, MovementKind.SHIPMENT_RELEASE):
            return self.source_type
        if self.kind == MovementKind.SHIPMENT_RECEIVE:
            return f"{self.source_type}->{self.destination_type}"
        if self.kind in (MovementKind.INVENTORY_ROW_PURGE, MovementKind.ENTITY_COUNT):
            return self.destination_type
        return None


def touches_for(movement: Movement) -> tuple[str, ...]:
    try:
        return MOVEMENT_TOUCHES[(movement.kind, movement.variant)]
    except KeyError:
        raise ConsistencyError(
            f"No topology for movement {movement.kind.value} ({movement.variant})",
            details={"kind": movement.kind.value, "variant": movement.variant},
        )


def _validate(movement: Movement) -> None:
    touches_for(movement)
    if movement.kind == MovementKind.COMPANY_RESTOCK:
        return
    if movement.kind == MovementKind.ENTITY_COUNT:
        if movement.qty not in (1, -1):
            raise ValidationError("Entity counts move by one", details={"qty": movement.qty})
        if movement.destination_type == ENDPOINT_OUTLET and not movement.source_id:
            raise ValidationError(
                "Outlet counts need the parent warehouse", details={"outlet_id": movement.destination_id},
            )
        return
    if movement.qty < 0 or movement.amount_cents < 0:
        raise ValidationError(
            "Movement quantities must be non-negative",
            details={"qty": movement.qty, "amount_cents": movement.amount_cents},
        )


# ---------- stock checks (read-only, run before any write) ----------

def available_at_source(source_type: str, source_id: str, product_id: str) -> int:
    if source_type == ENDPOINT_COMPANY:
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise ValidationError(f"Product {product_id} not found", details={"product_id": product_id})
        return product.qty
    if source_type == ENDPOINT_WAREHOUSE:
        row = db.session.query(WarehouseInventory).filter_by(
            warehouse_id=source_id, product_id=product_id
        ).first()
        return row.qty if row else 0
    raise ValidationError(f"Invalid source type: {source_type}")


def check_source_stock(source_type: str, source_id: str, product_id: str, qty: int) -> None:
    available = available_at_source(source_type, source_id, product_id)
    if available < qty:
        location = "Company" if source_type == ENDPOINT_COMPANY else f"Warehouse {source_id}"
        raise InsufficientStockError(
            product_id=product_id, requested=qty, available=available, location=location,
        )


def outlet_stock(outlet_id: str, product_id: str) -> OutletInventory | None:
    return db.session.query(OutletInventory).filter_by(outlet_id=outlet_id, product_id=product_id).first()


def check_outlet_stock(outlet_id: str, product_id: str, qty: int) -> OutletInventory:
    row = outlet_stock(outlet_id, product_id)
    available = row.qty if row else 0
    if row is None or available < qty:
        raise InsufficientStockError(
            product_id=product_id, requested=qty, available=available, location=f"Outlet {outlet_id}",
        )
    return row


# ---------- engine ----------

def _outlet_parent(outlet_id: str) -> str:
    outlet = db.session.query(Outlet).filter_by(id=outlet_id).first()
    if outlet is None:
        raise ConsistencyError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
    return outlet.warehouse_id


def _apply_outlet_sale(m: Movement, sign: int) -> list[str]:
    row = outlet_stock(m.destination_id, m.product_id)
    if row is None:
        raise ConsistencyError(
            f"Outlet {m.destination_id} has no inventory row for product {m.product_id}",
            details={"outlet_id": m.destination_id, "product_id": m.product_id},
        )
    parent_id = _outlet_parent(m.destination_id)
    qty = sign * m.qty
    amount = sign * m.amount_cents

    ledger.increment_outlet_inventory(
        m.destination_id, m.product_id, missing_error=ConsistencyError,
        qty=-qty, total_sold=qty, revenue_cents=amount,
    )
    # The credited warehouse row may have been purged; its revenue share is then dropped
    if m.source_id:
        ledger.increment_warehouse_inventory(
            m.source_id, m.product_id, required=False, revenue_cents=amount,
        )
    ledger.increment_outlet(
        m.destination_id, missing_error=ConsistencyError,
        total_stock=-qty, total_sales=qty, revenue_cents=amount,
    )
    ledger.increment_warehouse(parent_id, missing_error=ConsistencyError, total_revenue_cents=amount)
    ledger.increment_company(total_stock=-qty, total_units_sold=qty, total_revenue_cents=amount)
    return ["outlet_inventory", "warehouse_inventory", "outlet", "warehouse", "company"]


def _apply_source_reservation(m: Movement, sign: int) -> list[str]:
    """Dispatch (sign=+1) moves qty into the source reserve; release (sign=-1) undoes it."""
    qty = sign * m.qty
    if m.source_type == ENDPOINT_COMPANY:
        ledger.increment_product(m.product_id, missing_error=ConsistencyError, qty=-qty)
        ledger.increment_company_product(m.product_id, qty=-qty, in_transit=qty)
        ledger.increment_company(in_transit=qty)
        return ["product", "company_product", "company"]
    ledger.increment_warehouse_inventory(
        m.source_id, m.product_id, missing_error=ConsistencyError, qty=-qty, in_transit=qty,
    )
    ledger.increment_warehouse(m.source_id, missing_error=ConsistencyError, total_stock=-qty)
    return ["warehouse_inventory", "warehouse"]


def _apply_receive(m: Movement) -> list[str]:
    touched = []
    snapshot = {"sku": m.sku, "name": m.name, "unit_price_cents": m.unit_price_cents}

    if m.destination_type == ENDPOINT_WAREHOUSE:
        created = ledger.upsert_warehouse_inventory(
            m.destination_id, m.product_id, **snapshot, qty=m.qty, total_received=m.qty,
        )
        touched.append("warehouse_inventory")
    else:
        provenance = m.source_id if m.source_type == ENDPOINT_WAREHOUSE else _outlet_parent(m.destination_id)
        created = ledger.upsert_outlet_inventory(
            m.destination_id, m.product_id, **snapshot, warehouse_id=provenance,
            qty=m.qty, total_received=m.qty,
        )
        touched.append("outlet_inventory")

    if m.source_type == ENDPOINT_WAREHOUSE:
        ledger.increment_warehouse_inventory(
            m.source_id, m.product_id, missing_error=ConsistencyError,
            in_transit=-m.qty, total_shipped=m.qty,
        )
        touched.append("warehouse_inventory")
    else:
        ledger.increment_company_product(m.product_id, in_transit=-m.qty)
        touched.append("company_product")

    new_products = 1 if created else 0
    if m.destination_type == ENDPOINT_WAREHOUSE:
        ledger.increment_warehouse(
            m.destination_id, missing_error=ConsistencyError,
            total_stock=m.qty, total_products=new_products,
        )
        touched.append("warehouse")
    else:
        ledger.increment_outlet(
            m.destination_id, missing_error=ConsistencyError,
            total_stock=m.qty, total_products=new_products,
        )
        touched.append("outlet")

    if m.source_type == ENDPOINT_COMPANY:
        ledger.increment_company(in_transit=-m.qty)
        touched.append("company")
    return touched


def _apply_restock(m: Movement) -> list[str]:
    ledger.increment_product(m.product_id, qty=m.qty)
    ledger.increment_company_product(m.product_id, qty=m.qty)
    ledger.increment_company(total_stock=m.qty)
    return ["product", "company_product", "company"]


def _apply_row_purge(m: Movement) -> list[str]:
    if m.destination_type == ENDPOINT_WAREHOUSE:
        row = db.session.query(WarehouseInventory).filter_by(
            warehouse_id=m.destination_id, product_id=m.product_id
        ).first()
        if row is None:
            raise NotFoundError(
                f"Warehouse {m.destination_id} holds no product {m.product_id}",
                details={"warehouse_id": m.destination_id, "product_id": m.product_id},
            )
        destroyed = row.qty + row.in_transit
        ledger.increment_warehouse(
            m.destination_id, missing_error=ConsistencyError,
            total_stock=-row.qty, total_revenue_cents=-row.revenue_cents, total_products=-1,
        )
        ledger.delete_warehouse_inventory_row(m.destination_id, m.product_id)
        ledger.increment_company(total_stock=-destroyed)
        return ["warehouse_inventory", "warehouse", "company"]

    row = outlet_stock(m.destination_id, m.product_id)
    if row is None:
        raise NotFoundError(
            f"Outlet {m.destination_id} holds no product {m.product_id}",
            details={"outlet_id": m.destination_id, "product_id": m.product_id},
        )
    ledger.increment_outlet(
        m.destination_id, missing_error=ConsistencyError,
        total_stock=-row.qty, revenue_cents=-row.revenue_cents, total_products=-1,
    )
    ledger.delete_outlet_inventory_row(m.destination_id, m.product_id)
    ledger.increment_company(total_stock=-row.qty)
    return ["outlet_inventory", "outlet", "company"]


def _apply_product_force_delete(m: Movement) -> list[str]:
    product = db.session.query(Product).filter_by(id=m.product_id).first()
    snapshot = db.session.query(CompanyProduct).filter_by(product_id=m.product_id).first()
    if product is None or snapshot is None:
        raise ConsistencyError(
            f"Product {m.product_id} is missing from the company catalogue",
            details={"product_id": m.product_id},
        )
    in_flight = snapshot.in_transit
    ledger.delete_company_product(m.product_id)
    ledger.increment_company(
        total_stock=-(product.qty + in_flight),
        in_transit=-in_flight,
        total_products=-1,
    )
    return ["company_product", "company"]


def _apply_entity_count(m: Movement) -> list[str]:
    if m.destination_type == ENTITY_PRODUCT:
        ledger.increment_company(total_products=m.qty)
        return ["company"]
    if m.destination_type == ENDPOINT_WAREHOUSE:
        ledger.increment_company(total_warehouses=m.qty)
        return ["company"]
    ledger.increment_warehouse(m.source_id, missing_error=ConsistencyError, total_outlets=m.qty)
    ledger.increment_company(total_outlets=m.qty)
    return ["warehouse", "company"]


def apply_movement(movement: Movement) -> list[str]:
    """
    Apply one movement inside the caller's transaction.

    Returns the aggregates touched, in order. Any error aborts the
    enclosing transaction; nothing here compensates for a partial write.
    """
    _validate(movement)
    kind = movement.kind

    if kind == MovementKind.OUTLET_SALE:
        touched = _apply_outlet_sale(movement, +1)
    elif kind == MovementKind.OUTLET_SALE_REVERSAL:
        touched = _apply_outlet_sale(movement, -1)
    elif kind == MovementKind.SHIPMENT_DISPATCH:
        touched = _apply_source_reservation(movement, +1)
    elif kind == MovementKind.SHIPMENT_RELEASE:
        touched = _apply_source_reservation(movement, -1)
    elif kind == MovementKind.SHIPMENT_RECEIVE:
        touched = _apply_receive(movement)
    elif kind == MovementKind.COMPANY_RESTOCK:
        touched = _apply_restock(movement)
    elif kind == MovementKind.INVENTORY_ROW_PURGE:
        touched = _apply_row_purge(movement)
    elif kind == MovementKind.PRODUCT_FORCE_DELETE:
        touched = _apply_product_force_delete(movement)
    elif kind == MovementKind.ENTITY_COUNT:
        touched = _apply_entity_count(movement)
    else:
        raise ConsistencyError(f"Unhandled movement kind: {kind}")

    logger.debug("Applied %s for product %s: %s", kind.value, movement.product_id, touched)
    return touched


def record_shipment_settled(shipment) -> None:
    """Per-shipment counters on receive: company and each warehouse endpoint."""
    ledger.increment_company(total_shipments=1)
    endpoints = {
        (shipment.from_type, shipment.from_id),
        (shipment.to_type, shipment.to_id),
    }
    for endpoint_type, endpoint_id in sorted(endpoints):
        if endpoint_type == ENDPOINT_WAREHOUSE:
            ledger.increment_warehouse(endpoint_id, missing_error=ConsistencyError, total_shipments=1)
