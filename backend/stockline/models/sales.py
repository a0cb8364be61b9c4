from __future__ import annotations

from ..extensions import db
from ..identifiers import new_id, new_layaway_id
from ..time_utils import to_utc_z, utcnow

SALE_SOURCE_DIRECT = "direct"
SALE_SOURCE_LAYAWAY = "layaway"

# Layaway status constants
LAYAWAY_STATUS_PENDING_PAYMENT = "pending_payment"
LAYAWAY_STATUS_PAID_PENDING_PICKUP = "full_paid_pending_pickup"
LAYAWAY_STATUS_COMPLETED = "completed"
LAYAWAY_STATUS_CANCELLED = "cancelled"

LAYAWAY_OPEN_STATUSES = (LAYAWAY_STATUS_PENDING_PAYMENT, LAYAWAY_STATUS_PAID_PENDING_PICKUP)


class Sale(db.Model):
    """
    One sold line at an outlet.

    A checkout is the set of Sale rows sharing one transaction_id.
    unit_price_cents is frozen at sale time and
    total_amount_cents == qty_sold * unit_price_cents always holds.

    REVERSALS: a reversal is its own Sale row with negated qty and amount,
    is_reversal=True and reversed_sale_id pointing back at the original.
    reversed_sale_id is unique, so an original can be reversed at most once.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("reversed_sale_id", name="uq_sales_reversed_sale_id"),
        db.Index("ix_sales_outlet_sold_at", "outlet_id", "sold_at"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    transaction_id = db.Column(db.String(64), nullable=False, index=True)

    outlet_id = db.Column(db.String(64), nullable=False, index=True)
    warehouse_id = db.Column(db.String(64), nullable=True, index=True)
    # Warehouse whose inventory row was credited with this line's revenue
    revenue_warehouse_id = db.Column(db.String(64), nullable=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    qty_sold = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    sold_by = db.Column(db.String(64), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    is_reversal = db.Column(db.Boolean, nullable=False, default=False)
    reversed_sale_id = db.Column(db.String(64), nullable=True)

    source = db.Column(db.String(16), nullable=False, default=SALE_SOURCE_DIRECT)
    source_id = db.Column(db.String(64), nullable=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<Sale id={self.id} txn={self.transaction_id} product_id={self.product_id} "
            f"qty={self.qty_sold} reversal={self.is_reversal}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "outlet_id": self.outlet_id,
            "warehouse_id": self.warehouse_id,
            "revenue_warehouse_id": self.revenue_warehouse_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "qty_sold": self.qty_sold,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "sold_by": self.sold_by,
            "customer_name": self.customer_name,
            "is_reversal": self.is_reversal,
            "reversed_sale_id": self.reversed_sale_id,
            "source": self.source,
            "source_id": self.source_id,
            "sold_at": to_utc_z(self.sold_at),
        }


class Layaway(db.Model):
    """
    Deferred-payment order at an outlet.

    A layaway reserves intent, not stock: outlet stock is validated when the
    items are set but only deducted by completion, which records a normal
    sale transaction from the frozen item list.

    balance_cents == total_amount_cents - paid_amount_cents. Status follows the
    balance while open: pending_payment until fully paid, then
    full_paid_pending_pickup.
    """
    __tablename__ = "layaways"
    __table_args__ = (
        db.UniqueConstraint("reference", name="uq_layaways_reference"),
        db.Index("ix_layaways_outlet_status", "outlet_id", "status"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    reference = db.Column(db.String(32), nullable=False, default=new_layaway_id)
    outlet_id = db.Column(db.String(64), nullable=False, index=True)

    rep_id = db.Column(db.String(64), nullable=True, index=True)
    rep_name = db.Column(db.String(255), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(32), nullable=False, default=LAYAWAY_STATUS_PENDING_PAYMENT, index=True)

    sale_transaction_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "LayawayItem",
        backref="layaway",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="LayawayItem.position",
    )
    payments = db.relationship(
        "LayawayPayment",
        backref="layaway",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="LayawayPayment.paid_at",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "outlet_id": self.outlet_id,
            "rep_id": self.rep_id,
            "rep_name": self.rep_name,
            "customer_name": self.customer_name,
            "items": [i.to_dict() for i in self.items],
            "payments": [p.to_dict() for p in self.payments],
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "sale_transaction_id": self.sale_transaction_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }


class LayawayItem(db.Model):
    __tablename__ = "layaway_items"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    layaway_id = db.Column(db.String(64), db.ForeignKey("layaways.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    qty = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    @property
    def line_total_cents(self) -> int:
        return self.qty * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class LayawayPayment(db.Model):
    """Immutable payment history entry on a layaway."""
    __tablename__ = "layaway_payments"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    layaway_id = db.Column(db.String(64), db.ForeignKey("layaways.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, default="cash")
    recorded_by = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "recorded_by": self.recorded_by,
            "paid_at": to_utc_z(self.paid_at),
        }
