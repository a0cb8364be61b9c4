from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id
from ..time_utils import to_utc_z, utcnow

# Fixed well-known key of the one Company row
COMPANY_SINGLETON_KEY = "COMPANY"


class Company(db.Model):
    """
    The single top-level owner of all stock before distribution.

    SINGLETON: exactly one row exists. It is located through the fixed
    singleton_key (unique), never through "first row wins" queries.

    Totals are running counters maintained by the ledger primitives:
    - total_stock: every unit still inside the network (company, warehouses,
      outlets, and everything in transit)
    - in_transit: units dispatched from the company and not yet received
    """
    __tablename__ = "companies"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    singleton_key = db.Column(db.String(16), nullable=False, unique=True, default=COMPANY_SINGLETON_KEY)

    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    admin_id = db.Column(db.String(64), nullable=False)
    admin_name = db.Column(db.String(255), nullable=False)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    total_products = db.Column(db.Integer, nullable=False, default=0)
    total_units_sold = db.Column(db.Integer, nullable=False, default=0)
    total_shipments = db.Column(db.Integer, nullable=False, default=0)
    total_warehouses = db.Column(db.Integer, nullable=False, default=0)
    total_outlets = db.Column(db.Integer, nullable=False, default=0)
    total_workers = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    in_transit = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    products = db.relationship(
        "CompanyProduct",
        backref="company",
        lazy=True,
        order_by="CompanyProduct.name",
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self, include_products: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "address": self.address,
            "admin_id": self.admin_id,
            "admin_name": self.admin_name,
            "total_stock": self.total_stock,
            "total_products": self.total_products,
            "total_units_sold": self.total_units_sold,
            "total_shipments": self.total_shipments,
            "total_warehouses": self.total_warehouses,
            "total_outlets": self.total_outlets,
            "total_workers": self.total_workers,
            "total_revenue_cents": self.total_revenue_cents,
            "in_transit": self.in_transit,
            "last_updated": to_utc_z(self.last_updated),
            "created_at": to_utc_z(self.created_at),
        }
        if include_products:
            data["products"] = [p.to_dict() for p in self.products]
        return data


class CompanyProduct(db.Model):
    """
    Denormalized snapshot of a Product held on the Company.

    Kept in lockstep with Product: qty mirrors Product.qty and in_transit is
    the per-product share of Company.in_transit.
    """
    __tablename__ = "company_products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "product_id", name="uq_company_products_company_product"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    company_id = db.Column(db.String(64), db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    qty = db.Column(db.Integer, nullable=False, default=0)
    in_transit = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "qty": self.qty,
            "in_transit": self.in_transit,
        }
