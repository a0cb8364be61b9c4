# backend/stockline/services/layaway_service.py
"""
Layaway service.

A layaway reserves intent, not stock. Items are priced and checked against
outlet stock when they are set, but nothing is deducted until completion,
which records an ordinary sale transaction from the frozen item list.

LIFECYCLE:
1. pending_payment: balance > 0
2. full_paid_pending_pickup: balance <= 0, goods still at the outlet
3. completed: goods collected, sale transaction recorded
4. cancelled: withdrawn before completion
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..errors import (
    AlreadyCompleted,
    InvalidStateTransition,
    NotFoundError,
    OutstandingBalanceError,
    ValidationError,
)
from ..identifiers import new_id
from ..models import Layaway, LayawayItem, LayawayPayment
from ..models.sales import (
    LAYAWAY_OPEN_STATUSES,
    LAYAWAY_STATUS_CANCELLED,
    LAYAWAY_STATUS_COMPLETED,
    LAYAWAY_STATUS_PAID_PENDING_PICKUP,
    LAYAWAY_STATUS_PENDING_PAYMENT,
    SALE_SOURCE_LAYAWAY,
)
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import check_outlet_stock
from .sales_service import _record_lines, _require_outlet

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {"cash", "card", "transfer", "mobile"}


def _status_for_balance(balance_cents: int) -> str:
    return LAYAWAY_STATUS_PAID_PENDING_PICKUP if balance_cents <= 0 else LAYAWAY_STATUS_PENDING_PAYMENT


def _non_negative_int(value, field: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", details={field: value})
    return value


def _build_items(outlet_id: str, items) -> list[LayawayItem]:
    """
    Price and stock-check layaway items.

    unit_price_cents falls back to the outlet's frozen inventory price.
    """
    if not items or not isinstance(items, list):
        raise ValidationError("Layaway requires at least one item")

    demand: dict[str, int] = {}
    built = []
    for position, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Each layaway item must be an object")
        product_id = raw.get("product_id")
        qty = raw.get("qty")
        if not product_id:
            raise ValidationError("product_id is required on every item")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError(
                f"qty must be a positive integer for product {product_id}",
                details={"product_id": product_id, "qty": qty},
            )
        demand[product_id] = demand.get(product_id, 0) + qty
        row = check_outlet_stock(outlet_id, product_id, demand[product_id])

        price = raw.get("unit_price_cents")
        if price is None:
            price = row.unit_price_cents
        if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
            raise ValidationError(
                f"unit_price_cents must be a positive integer for product {product_id}",
                details={"product_id": product_id, "unit_price_cents": price},
            )
        built.append(LayawayItem(
            product_id=product_id,
            position=position,
            sku=row.sku,
            name=row.name,
            qty=qty,
            unit_price_cents=price,
        ))
    return built


def _add_payment(layaway: Layaway, amount_cents: int, method: str, recorded_by: str | None) -> None:
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}",
            details={"method": method, "allowed": sorted(PAYMENT_METHODS)},
        )
    layaway.payments.append(LayawayPayment(
        amount_cents=amount_cents,
        method=method,
        recorded_by=recorded_by,
        paid_at=utcnow(),
    ))
    layaway.paid_amount_cents += amount_cents


def _refresh_balance(layaway: Layaway) -> None:
    if layaway.paid_amount_cents > layaway.total_amount_cents:
        raise ValidationError(
            "Paid amount cannot exceed the layaway total",
            details={
                "total_amount_cents": layaway.total_amount_cents,
                "paid_amount_cents": layaway.paid_amount_cents,
            },
        )
    layaway.balance_cents = layaway.total_amount_cents - layaway.paid_amount_cents
    layaway.status = _status_for_balance(layaway.balance_cents)
    layaway.last_updated = utcnow()


def _lock_layaway(layaway_id: str) -> Layaway:
    layaway = lock_for_update(db.session.query(Layaway).filter_by(id=layaway_id)).first()
    if layaway is None:
        raise NotFoundError(f"Layaway {layaway_id} not found", details={"layaway_id": layaway_id})
    return layaway


def _require_open(layaway: Layaway, action: str) -> None:
    if layaway.status == LAYAWAY_STATUS_COMPLETED:
        raise AlreadyCompleted(
            f"Layaway {layaway.id} is already completed",
            details={"layaway_id": layaway.id, "action": action},
        )
    if layaway.status not in LAYAWAY_OPEN_STATUSES:
        raise InvalidStateTransition(
            f"Cannot {action} layaway in {layaway.status} status",
            details={"layaway_id": layaway.id, "status": layaway.status},
        )


def create_layaway(
    outlet_id: str,
    rep_id: str | None,
    items: list[dict],
    paid_now: int = 0,
    customer_name: str | None = None,
    rep_name: str | None = None,
    payment_method: str = "cash",
) -> Layaway:
    def _op():
        with atomic():
            _require_outlet(outlet_id)
            paid = _non_negative_int(paid_now, "paid_now")
            layaway = Layaway(
                outlet_id=outlet_id,
                rep_id=rep_id,
                rep_name=rep_name,
                customer_name=customer_name,
                paid_amount_cents=0,
            )
            layaway.items = _build_items(outlet_id, items)
            layaway.total_amount_cents = sum(i.line_total_cents for i in layaway.items)
            if paid:
                _add_payment(layaway, paid, payment_method, rep_id)
            _refresh_balance(layaway)
            db.session.add(layaway)
            db.session.flush()
        logger.info(
            "Layaway %s created at outlet %s: total %s, paid %s",
            layaway.reference, outlet_id, layaway.total_amount_cents, layaway.paid_amount_cents,
        )
        return layaway

    return run_with_retry(_op)


def update_layaway(
    layaway_id: str,
    items: list[dict] | None = None,
    additional_payment: int = 0,
    recorded_by: str | None = None,
    customer_name: str | None = None,
    payment_method: str = "cash",
) -> Layaway:
    """Replace items and/or add a payment to an open layaway."""
    def _op():
        with atomic():
            layaway = _lock_layaway(layaway_id)
            _require_open(layaway, "update")
            extra = _non_negative_int(additional_payment, "additional_payment")

            if items is not None:
                new_items = _build_items(layaway.outlet_id, items)
                layaway.items = []
                db.session.flush()
                layaway.items = new_items
                layaway.total_amount_cents = sum(i.line_total_cents for i in new_items)
            if customer_name is not None:
                layaway.customer_name = customer_name
            if extra:
                _add_payment(layaway, extra, payment_method, recorded_by)
            _refresh_balance(layaway)
            db.session.flush()
        return layaway

    return run_with_retry(_op)


def record_layaway_payment(
    layaway_id: str,
    amount_cents: int,
    method: str = "cash",
    recorded_by: str | None = None,
) -> Layaway:
    def _op():
        with atomic():
            layaway = _lock_layaway(layaway_id)
            _require_open(layaway, "pay")
            if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
                raise ValidationError(
                    "amount_cents must be a positive integer",
                    details={"amount_cents": amount_cents},
                )
            _add_payment(layaway, amount_cents, method, recorded_by)
            _refresh_balance(layaway)
            db.session.flush()
        logger.info("Layaway %s payment of %s cents (%s)", layaway.reference, amount_cents, method)
        return layaway

    return run_with_retry(_op)


def cancel_layaway(layaway_id: str, actor_id: str | None = None) -> Layaway:
    def _op():
        with atomic():
            layaway = _lock_layaway(layaway_id)
            if layaway.status == LAYAWAY_STATUS_CANCELLED:
                raise InvalidStateTransition(
                    f"Layaway {layaway_id} is already cancelled",
                    details={"layaway_id": layaway_id},
                )
            _require_open(layaway, "cancel")
            _cancel(layaway)
        logger.info("Layaway %s cancelled by %s", layaway.reference, actor_id)
        return layaway

    return run_with_retry(_op)


def _cancel(layaway: Layaway) -> None:
    layaway.status = LAYAWAY_STATUS_CANCELLED
    layaway.cancelled_at = utcnow()
    layaway.last_updated = utcnow()
    db.session.flush()


def complete_layaway(layaway_id: str, actor_id: str | None = None) -> dict:
    """
    Hand over a fully paid layaway and record its sale transaction.

    Raises:
        AlreadyCompleted: completed before
        InvalidStateTransition: cancelled
        OutstandingBalanceError: balance > 0
        InsufficientStockError: outlet no longer holds the items
    """
    def _op():
        with atomic():
            layaway = _lock_layaway(layaway_id)
            _require_open(layaway, "complete")
            if layaway.balance_cents > 0:
                raise OutstandingBalanceError(layaway.id, layaway.balance_cents)

            outlet = _require_outlet(layaway.outlet_id)
            lines = [
                {
                    "product_id": item.product_id,
                    "qty_sold": item.qty,
                    "unit_price_cents": item.unit_price_cents,
                }
                for item in layaway.items
            ]
            transaction_id = new_id()
            _, total = _record_lines(
                outlet,
                lines,
                transaction_id=transaction_id,
                sold_by=actor_id or layaway.rep_id,
                customer_name=layaway.customer_name,
                source=SALE_SOURCE_LAYAWAY,
                source_id=layaway.id,
            )
            layaway.status = LAYAWAY_STATUS_COMPLETED
            layaway.sale_transaction_id = transaction_id
            layaway.completed_at = utcnow()
            layaway.last_updated = utcnow()
            db.session.flush()
        logger.info("Layaway %s completed as transaction %s", layaway.reference, transaction_id)
        return {"transaction_id": transaction_id, "total_amount_cents": total, "layaway_id": layaway_id}

    return run_with_retry(_op)


def get_layaway(layaway_id: str) -> Layaway:
    layaway = db.session.query(Layaway).filter_by(id=layaway_id).first()
    if layaway is None:
        raise NotFoundError(f"Layaway {layaway_id} not found", details={"layaway_id": layaway_id})
    return layaway


def list_layaways(outlet_id: str | None = None, status: str | None = None, rep_id: str | None = None) -> dict:
    query = db.session.query(Layaway)
    if outlet_id:
        query = query.filter(Layaway.outlet_id == outlet_id)
    if status:
        query = query.filter(Layaway.status == status)
    if rep_id:
        query = query.filter(Layaway.rep_id == rep_id)
    layaways = query.order_by(Layaway.created_at.desc(), Layaway.id.asc()).all()

    open_rows = [l for l in layaways if l.status in LAYAWAY_OPEN_STATUSES]
    return {
        "items": [l.to_dict() for l in layaways],
        "count": len(layaways),
        "stats": {
            "pending_payment": sum(1 for l in layaways if l.status == LAYAWAY_STATUS_PENDING_PAYMENT),
            "awaiting_pickup": sum(1 for l in layaways if l.status == LAYAWAY_STATUS_PAID_PENDING_PICKUP),
            "completed": sum(1 for l in layaways if l.status == LAYAWAY_STATUS_COMPLETED),
            "total_balance_cents": sum(l.balance_cents for l in open_rows),
        },
    }


def cancel_open_layaways_for_outlet(outlet_id: str) -> int:
    """Cancel every open layaway at an outlet inside the caller's transaction."""
    rows = (
        db.session.query(Layaway)
        .filter(Layaway.outlet_id == outlet_id, Layaway.status.in_(LAYAWAY_OPEN_STATUSES))
        .all()
    )
    for layaway in rows:
        _cancel(layaway)
    return len(rows)
