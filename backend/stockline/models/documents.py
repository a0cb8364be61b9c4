from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from ..time_utils import to_utc_z, utcnow

# Endpoint types
ENDPOINT_COMPANY = "Company"
ENDPOINT_WAREHOUSE = "Warehouse"
ENDPOINT_OUTLET = "Outlet"

SHIPMENT_SOURCE_TYPES = (ENDPOINT_COMPANY, ENDPOINT_WAREHOUSE)
SHIPMENT_DESTINATION_TYPES = (ENDPOINT_WAREHOUSE, ENDPOINT_OUTLET)

# Shipment status constants
SHIPMENT_STATUS_IN_TRANSIT = "IN_TRANSIT"
SHIPMENT_STATUS_RECEIVED = "RECEIVED"
SHIPMENT_STATUS_REJECTED = "REJECTED"
SHIPMENT_STATUS_CANCELLED = "CANCELLED"

SHIPMENT_TERMINAL_STATUSES = (
    SHIPMENT_STATUS_RECEIVED,
    SHIPMENT_STATUS_REJECTED,
    SHIPMENT_STATUS_CANCELLED,
)


class Shipment(db.Model):
    """
    Stock movement document between two network endpoints.

    LIFECYCLE:
    1. IN_TRANSIT: created; quantities already deducted from the source and
       held in the source's in_transit reserve
    2. RECEIVED: destination inventory applied, source reserve released
    3. REJECTED / CANCELLED: quantities returned to the source

    Line quantities are fixed once created. The only in-place change after
    creation is an administrative edit while still IN_TRANSIT, which
    re-runs the reservation against the source.
    """
    __tablename__ = "shipments"
    __table_args__ = (
        db.Index("ix_shipments_status_created", "status", "created_at"),
        db.Index("ix_shipments_from", "from_type", "from_id"),
        db.Index("ix_shipments_to", "to_type", "to_id"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)

    from_type = db.Column(db.String(16), nullable=False)
    from_id = db.Column(db.String(64), nullable=False)
    from_name = db.Column(db.String(255), nullable=False)

    to_type = db.Column(db.String(16), nullable=False)
    to_id = db.Column(db.String(64), nullable=False)
    to_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SHIPMENT_STATUS_IN_TRANSIT, index=True)

    sender_id = db.Column(db.String(64), nullable=True)
    sender_phone = db.Column(db.String(64), nullable=True)
    processed_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "ShipmentLine",
        backref="shipment",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ShipmentLine.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_qty(self) -> int:
        return sum(line.qty for line in self.lines)

    @property
    def total_value_cents(self) -> int:
        return sum(line.qty * line.unit_price_cents for line in self.lines)

    def __repr__(self) -> str:
        return (
            f"<Shipment id={self.id} {self.from_type}:{self.from_id} -> "
            f"{self.to_type}:{self.to_id} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from": {"id": self.from_id, "name": self.from_name, "type": self.from_type},
            "to": {"id": self.to_id, "name": self.to_name, "type": self.to_type},
            "status": self.status,
            "sender_id": self.sender_id,
            "sender_phone": self.sender_phone,
            "processed_by": self.processed_by,
            "lines": [line.to_dict() for line in self.lines],
            "total_qty": self.total_qty,
            "total_value_cents": self.total_value_cents,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
            "version_id": self.version_id,
        }


class ShipmentLine(db.Model):
    """One product on a shipment, with sku/name/price frozen at dispatch."""
    __tablename__ = "shipment_lines"
    __table_args__ = (
        db.UniqueConstraint("shipment_id", "product_id", name="uq_shipment_lines_shipment_product"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    shipment_id = db.Column(db.String(64), db.ForeignKey("shipments.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
        }
