from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from ..time_utils import to_utc_z, utcnow

STOCK_STATUS_IN_STOCK = "IN_STOCK"
STOCK_STATUS_OUT_OF_STOCK = "OUT_OF_STOCK"


class Product(db.Model):
    """
    Product master data.

    qty is stock still held at Company level: units not yet dispatched to
    any warehouse or outlet. SKUs are globally unique.

    PRICE: unit_price_cents is the current catalogue price. Shipment lines,
    inventory rows and sales each freeze their own copy, so later edits
    never rewrite history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    company_id = db.Column(db.String(64), db.ForeignKey("companies.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    unit_price_cents = db.Column(db.Integer, nullable=False)
    qty = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STOCK_STATUS_OUT_OF_STOCK)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "qty": self.qty,
            "status": self.status,
            "last_updated": to_utc_z(self.last_updated),
            "created_at": to_utc_z(self.created_at),
        }


class WarehouseInventory(db.Model):
    """
    Per-warehouse stock row. At most one row per (warehouse, product).

    qty is on hand; in_transit is reserved for outbound shipments that have
    been dispatched but not yet settled. revenue_cents accumulates sales made
    by child outlets from stock this warehouse supplied.
    """
    __tablename__ = "warehouse_inventory"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "product_id", name="uq_warehouse_inventory_warehouse_product"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    warehouse_id = db.Column(db.String(64), db.ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    qty = db.Column(db.Integer, nullable=False, default=0)
    in_transit = db.Column(db.Integer, nullable=False, default=0)
    total_shipped = db.Column(db.Integer, nullable=False, default=0)
    total_received = db.Column(db.Integer, nullable=False, default=0)
    revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STOCK_STATUS_OUT_OF_STOCK)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "qty": self.qty,
            "in_transit": self.in_transit,
            "total_shipped": self.total_shipped,
            "total_received": self.total_received,
            "revenue_cents": self.revenue_cents,
            "status": self.status,
            "last_updated": to_utc_z(self.last_updated),
        }


class OutletInventory(db.Model):
    """
    Per-outlet stock row. At most one row per (outlet, product).

    unit_price_cents is frozen from the shipment line that first brought the
    product in. warehouse_id records which warehouse the stock came through.
    """
    __tablename__ = "outlet_inventory"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "product_id", name="uq_outlet_inventory_outlet_product"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    outlet_id = db.Column(db.String(64), db.ForeignKey("outlets.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    warehouse_id = db.Column(db.String(64), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    qty = db.Column(db.Integer, nullable=False, default=0)
    total_received = db.Column(db.Integer, nullable=False, default=0)
    total_sold = db.Column(db.Integer, nullable=False, default=0)
    revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STOCK_STATUS_OUT_OF_STOCK)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "sku": self.sku,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "qty": self.qty,
            "total_received": self.total_received,
            "total_sold": self.total_sold,
            "revenue_cents": self.revenue_cents,
            "status": self.status,
            "last_updated": to_utc_z(self.last_updated),
        }


class RestockLog(db.Model):
    """Append-only restock audit trail. Never updated or deleted by services."""
    __tablename__ = "restock_logs"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    added_qty = db.Column(db.Integer, nullable=False)
    restocked_by = db.Column(db.String(64), nullable=True)
    note = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "added_qty": self.added_qty,
            "restocked_by": self.restocked_by,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
