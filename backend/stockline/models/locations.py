from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from ..time_utils import to_utc_z, utcnow

LOCATION_STATUS_ACTIVE = "active"
LOCATION_STATUS_INACTIVE = "inactive"


class Warehouse(db.Model):
    """
    Regional stock holder between the Company and its Outlets.

    total_stock is on-hand stock only: units reserved for an outbound
    shipment leave total_stock at dispatch time and live in
    WarehouseInventory.in_transit until the shipment settles.
    """
    __tablename__ = "warehouses"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    manager_id = db.Column(db.String(64), nullable=True, index=True)
    manager_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=LOCATION_STATUS_ACTIVE)

    total_outlets = db.Column(db.Integer, nullable=False, default=0)
    total_products = db.Column(db.Integer, nullable=False, default=0)
    total_shipments = db.Column(db.Integer, nullable=False, default=0)
    total_stock = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "address": self.address,
            "manager_id": self.manager_id,
            "manager_name": self.manager_name,
            "status": self.status,
            "total_outlets": self.total_outlets,
            "total_products": self.total_products,
            "total_shipments": self.total_shipments,
            "total_stock": self.total_stock,
            "total_revenue_cents": self.total_revenue_cents,
            "last_updated": to_utc_z(self.last_updated),
            "created_at": to_utc_z(self.created_at),
        }


class Outlet(db.Model):
    """Point of sale under a parent Warehouse, staffed by one or more reps."""
    __tablename__ = "outlets"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    warehouse_id = db.Column(db.String(64), db.ForeignKey("warehouses.id"), nullable=False, index=True)
    location = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    manager_id = db.Column(db.String(64), nullable=True, index=True)
    manager_name = db.Column(db.String(255), nullable=True)
    rep_ids = db.Column(db.JSON, nullable=False, default=list)
    rep_names = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(16), nullable=False, default=LOCATION_STATUS_ACTIVE)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    total_products = db.Column(db.Integer, nullable=False, default=0)
    total_sales = db.Column(db.Integer, nullable=False, default=0)
    revenue_cents = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    warehouse = db.relationship("Warehouse", backref=db.backref("outlets", lazy=True))

    def __repr__(self) -> str:
        return f"<Outlet id={self.id} name={self.name!r} warehouse_id={self.warehouse_id}>"

    def has_rep(self, rep_id: str) -> bool:
        return rep_id in (self.rep_ids or [])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "location": self.location,
            "address": self.address,
            "phone": self.phone,
            "manager_id": self.manager_id,
            "manager_name": self.manager_name,
            "rep_ids": list(self.rep_ids or []),
            "rep_names": list(self.rep_names or []),
            "status": self.status,
            "total_stock": self.total_stock,
            "total_products": self.total_products,
            "total_sales": self.total_sales,
            "revenue_cents": self.revenue_cents,
            "last_updated": to_utc_z(self.last_updated),
            "created_at": to_utc_z(self.created_at),
        }
