# Overview: Sales transaction processor; create, reverse, edit and delete checkout transactions.

from __future__ import annotations

import logging
from collections import OrderedDict

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    AlreadyReversed,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from ..identifiers import new_id, reversal_sale_id, reversal_transaction_id
from ..models import Outlet, Sale
from ..models.sales import SALE_SOURCE_DIRECT
from ..validation import MAX_PRICE_CENTS
from .concurrency import atomic, run_with_retry
from .inventory_service import Movement, apply_movement, check_outlet_stock, outlet_stock

logger = logging.getLogger(__name__)

"""
Sales invariants:
- A checkout is every Sale row sharing one transaction_id.
- total_amount_cents == qty_sold * unit_price_cents on every row.
- unit_price_cents is frozen on the row; later product price changes never
  touch recorded sales.
- A reversal row negates exactly one original row and carries
  transaction_id REV-<original transaction_id>. Reversal rows are never
  themselves reversed, edited or deleted directly.
"""


def _require_outlet(outlet_id: str) -> Outlet:
    outlet = db.session.query(Outlet).filter_by(id=outlet_id).first()
    if outlet is None:
        raise NotFoundError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
    return outlet


def _require_restorable(sale: Sale) -> None:
    """Stock can only go back to an outlet that still holds the product."""
    outlet = db.session.query(Outlet).filter_by(id=sale.outlet_id).first()
    if outlet is None or outlet_stock(sale.outlet_id, sale.product_id) is None:
        raise InvalidStateTransition(
            f"Outlet {sale.outlet_id} no longer stocks product {sale.product_id}; sale {sale.id} cannot be undone",
            details={"sale_id": sale.id, "outlet_id": sale.outlet_id, "product_id": sale.product_id},
        )


def _positive_int(value, field: str, product_id: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(
            f"{field} must be a positive integer for product {product_id}",
            details={"product_id": product_id, field: value},
        )
    return value


def _normalize_sale_lines(outlet_id: str, lines, *, price_fallback: bool) -> list[dict]:
    """
    Validate sale lines.

    unit_price_cents must be supplied by the caller. With price_fallback the
    outlet's frozen inventory price is used for lines that omit it.
    """
    if not lines or not isinstance(lines, list):
        raise ValidationError("Sale requires at least one line")

    normalized = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each sale line must be an object")
        product_id = raw.get("product_id")
        if not product_id:
            raise ValidationError("product_id is required on every line")
        qty = _positive_int(raw.get("qty_sold"), "qty_sold", product_id)

        price = raw.get("unit_price_cents")
        if price is None and price_fallback:
            row = outlet_stock(outlet_id, product_id)
            price = row.unit_price_cents if row else None
        if price is None:
            raise ValidationError(
                f"unit_price_cents is required for product {product_id}",
                details={"product_id": product_id},
            )
        price = _positive_int(price, "unit_price_cents", product_id)
        if price > MAX_PRICE_CENTS:
            raise ValidationError(
                f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}",
                details={"product_id": product_id, "unit_price_cents": price},
            )
        normalized.append({"product_id": product_id, "qty_sold": qty, "unit_price_cents": price})
    return normalized


def _check_lines_stock(outlet_id: str, lines: list[dict]) -> None:
    """Check aggregated per-product demand against outlet stock before any write."""
    demand: "OrderedDict[str, int]" = OrderedDict()
    for line in lines:
        demand[line["product_id"]] = demand.get(line["product_id"], 0) + line["qty_sold"]
    for product_id, qty in demand.items():
        check_outlet_stock(outlet_id, product_id, qty)


def _record_lines(
    outlet: Outlet,
    lines: list[dict],
    *,
    transaction_id: str,
    sold_by: str | None,
    customer_name: str | None = None,
    source: str = SALE_SOURCE_DIRECT,
    source_id: str | None = None,
) -> tuple[list[Sale], int]:
    """
    Apply OUTLET_SALE for every line and persist one Sale row per line.

    Runs inside the caller's transaction.
    """
    _check_lines_stock(outlet.id, lines)

    sales = []
    total = 0
    for line in lines:
        row = outlet_stock(outlet.id, line["product_id"])
        amount = line["qty_sold"] * line["unit_price_cents"]
        apply_movement(Movement.outlet_sale(
            outlet.id, line["product_id"], line["qty_sold"], amount, row.warehouse_id,
        ))
        sale = Sale(
            transaction_id=transaction_id,
            outlet_id=outlet.id,
            warehouse_id=outlet.warehouse_id,
            revenue_warehouse_id=row.warehouse_id,
            product_id=line["product_id"],
            sku=row.sku,
            product_name=row.name,
            qty_sold=line["qty_sold"],
            unit_price_cents=line["unit_price_cents"],
            total_amount_cents=amount,
            sold_by=sold_by,
            customer_name=customer_name,
            source=source,
            source_id=source_id,
        )
        db.session.add(sale)
        sales.append(sale)
        total += amount
    db.session.flush()
    return sales, total


def record_sale(
    outlet_id: str,
    lines: list[dict],
    sold_by: str | None = None,
    customer_name: str | None = None,
) -> dict:
    """
    Record one checkout (one or many lines) under a fresh transaction id.

    Args:
        lines: [{"product_id": str, "qty_sold": int, "unit_price_cents": int}, ...]

    Returns:
        {"transaction_id", "total_amount_cents", "sales"}

    Raises:
        ValidationError: missing/invalid qty or unit price
        InsufficientStockError: outlet holds less than requested
    """
    def _op():
        with atomic():
            outlet = _require_outlet(outlet_id)
            normalized = _normalize_sale_lines(outlet_id, lines, price_fallback=False)
            transaction_id = new_id()
            sales, total = _record_lines(
                outlet, normalized,
                transaction_id=transaction_id, sold_by=sold_by, customer_name=customer_name,
            )
            result = {
                "transaction_id": transaction_id,
                "total_amount_cents": total,
                "sales": [s.to_dict() for s in sales],
            }
        logger.info("Sale %s recorded at outlet %s: %s cents", transaction_id, outlet_id, total)
        return result

    return run_with_retry(_op)


def _reverse_one(original: Sale, actor_id: str | None) -> Sale:
    """Apply the exact negation of one original sale row and persist the reversal."""
    apply_movement(Movement.outlet_sale_reversal(
        original.outlet_id, original.product_id, original.qty_sold, original.total_amount_cents,
        original.revenue_warehouse_id,
    ))
    reversal = Sale(
        id=reversal_sale_id(),
        transaction_id=reversal_transaction_id(original.transaction_id),
        outlet_id=original.outlet_id,
        warehouse_id=original.warehouse_id,
        revenue_warehouse_id=original.revenue_warehouse_id,
        product_id=original.product_id,
        sku=original.sku,
        product_name=original.product_name,
        qty_sold=-original.qty_sold,
        unit_price_cents=original.unit_price_cents,
        total_amount_cents=-original.total_amount_cents,
        sold_by=actor_id,
        customer_name=original.customer_name,
        is_reversal=True,
        reversed_sale_id=original.id,
        source=original.source,
        source_id=original.source_id,
    )
    db.session.add(reversal)
    return reversal


def reverse_sale(sale_id: str, actor_id: str | None = None) -> Sale:
    """
    Reverse one sale line.

    Raises:
        NotFoundError: no such sale
        ValidationError: the sale is itself a reversal
        AlreadyReversed: a reversal for this sale exists
        InvalidStateTransition: the outlet or its stock row has since been deleted
    """
    def _op():
        try:
            with atomic():
                original = db.session.query(Sale).filter_by(id=sale_id).first()
                if original is None:
                    raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
                if original.is_reversal:
                    raise ValidationError(
                        f"Sale {sale_id} is a reversal record and cannot be reversed",
                        details={"sale_id": sale_id},
                    )
                existing = db.session.query(Sale.id).filter_by(reversed_sale_id=sale_id).first()
                if existing is not None:
                    raise AlreadyReversed(
                        f"Sale {sale_id} has already been reversed",
                        details={"sale_id": sale_id, "reversal_id": existing[0]},
                    )
                _require_restorable(original)
                reversal = _reverse_one(original, actor_id)
                db.session.flush()
        except IntegrityError:
            # Unique reversed_sale_id: a concurrent reversal won
            raise AlreadyReversed(
                f"Sale {sale_id} has already been reversed",
                details={"sale_id": sale_id},
            )
        logger.info("Sale %s reversed by %s", sale_id, actor_id)
        return reversal

    return run_with_retry(_op)


def _load_transaction(transaction_id: str) -> list[Sale]:
    sales = (
        db.session.query(Sale)
        .filter_by(transaction_id=transaction_id)
        .order_by(Sale.sold_at.asc(), Sale.id.asc())
        .all()
    )
    if not sales:
        raise NotFoundError(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
    if any(s.is_reversal for s in sales):
        raise ValidationError(
            f"Transaction {transaction_id} holds reversal records and cannot be changed directly",
            details={"transaction_id": transaction_id},
        )
    for sale in sales:
        _require_restorable(sale)
    return sales


def _unwind_transaction(sales: list[Sale]) -> None:
    """
    Undo every still-live line of a transaction and delete its rows.

    Lines already reversed have had their effects undone; only their
    reversal records are removed.
    """
    ids = [s.id for s in sales]
    reversals = db.session.query(Sale).filter(Sale.reversed_sale_id.in_(ids)).all()
    reversed_ids = {r.reversed_sale_id for r in reversals}

    for sale in sales:
        if sale.id in reversed_ids:
            continue
        apply_movement(Movement.outlet_sale_reversal(
            sale.outlet_id, sale.product_id, sale.qty_sold, sale.total_amount_cents,
            sale.revenue_warehouse_id,
        ))

    for row in reversals + sales:
        db.session.delete(row)
    db.session.flush()


def edit_transaction(transaction_id: str, new_lines: list[dict], actor_id: str | None = None) -> dict:
    """
    Replace every line of a transaction, keeping its transaction id.

    The old lines are unwound first, so the net effect on every aggregate
    equals applying the difference directly.
    """
    def _op():
        with atomic():
            sales = _load_transaction(transaction_id)
            first = sales[0]
            outlet = _require_outlet(first.outlet_id)
            normalized = _normalize_sale_lines(outlet.id, new_lines, price_fallback=True)

            _unwind_transaction(sales)
            new_sales, total = _record_lines(
                outlet, normalized,
                transaction_id=transaction_id,
                sold_by=first.sold_by,
                customer_name=first.customer_name,
                source=first.source,
                source_id=first.source_id,
            )
            result = {
                "transaction_id": transaction_id,
                "total_amount_cents": total,
                "sales": [s.to_dict() for s in new_sales],
            }
        logger.info("Transaction %s edited by %s: %s cents", transaction_id, actor_id, total)
        return result

    return run_with_retry(_op)


def delete_transaction(transaction_id: str, actor_id: str | None = None) -> dict:
    """Undo every line of a transaction and hard-delete its Sale rows."""
    def _op():
        with atomic():
            sales = _load_transaction(transaction_id)
            count = len(sales)
            _unwind_transaction(sales)
        logger.info("Transaction %s deleted by %s (%s lines)", transaction_id, actor_id, count)
        return {"transaction_id": transaction_id, "deleted": count}

    return run_with_retry(_op)


def get_transaction(transaction_id: str) -> dict:
    sales = (
        db.session.query(Sale)
        .filter_by(transaction_id=transaction_id)
        .order_by(Sale.sold_at.asc(), Sale.id.asc())
        .all()
    )
    if not sales:
        raise NotFoundError(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
    return {
        "transaction_id": transaction_id,
        "outlet_id": sales[0].outlet_id,
        "sold_by": sales[0].sold_by,
        "sold_at": sales[0].to_dict()["sold_at"],
        "total_amount_cents": sum(s.total_amount_cents for s in sales),
        "total_qty": sum(s.qty_sold for s in sales),
        "lines": [s.to_dict() for s in sales],
    }


def get_sale(sale_id: str) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale
