# Overview: Ledger primitives; single-statement atomic increments on one aggregate row.

"""
Ledger primitives.

Every running total in the network is changed through one of these
functions and nowhere else. Each call issues a single
UPDATE ... SET col = col + :delta statement, so no primitive ever
reads-then-writes. Callers compute every delta before calling.

GUARDS: qty and in_transit never go below zero. The guard is part of
the same UPDATE (WHERE col + :delta >= 0). When the statement matches no
row the primitive re-reads once to report why:
- row missing            -> NotFoundError (or the caller's missing_error)
- qty guard failed       -> InsufficientStockError
- in_transit guard failed -> ConsistencyError

Inventory-like rows (Product, WarehouseInventory, OutletInventory) have
their IN_STOCK / OUT_OF_STOCK status recomputed in the same statement.
"""
from __future__ import annotations

from sqlalchemy import case

from ..extensions import db
from ..errors import ConsistencyError, InsufficientStockError, NotFoundError
from ..models import (
    Company,
    CompanyProduct,
    Outlet,
    OutletInventory,
    Product,
    Warehouse,
    WarehouseInventory,
)
from ..models.company import COMPANY_SINGLETON_KEY
from ..models.inventory import STOCK_STATUS_IN_STOCK, STOCK_STATUS_OUT_OF_STOCK
from ..time_utils import utcnow
from .concurrency import lock_for_update

# Columns that must stay >= 0 after every statement
GUARDED_COLUMNS = ("qty", "in_transit")

# Columns no delta may target
_FIXED_COLUMNS = {"id", "singleton_key", "company_id", "warehouse_id", "outlet_id", "product_id",
                  "status", "last_updated", "created_at"}

_STATUS_TRACKED = (Product, WarehouseInventory, OutletInventory)


def _counter_columns(model) -> set[str]:
    cols = set()
    for col in model.__table__.columns:
        if col.key in _FIXED_COLUMNS:
            continue
        if isinstance(col.type, db.Integer):
            cols.add(col.key)
    return cols


def _increment(
    model,
    keys: dict,
    deltas: dict,
    *,
    label: str,
    product_id: str | None = None,
    assign: dict | None = None,
    missing_error=NotFoundError,
    required: bool = True,
) -> None:
    allowed = _counter_columns(model)
    unknown = sorted(k for k in deltas if k not in allowed)
    if unknown:
        raise ConsistencyError(
            f"Unknown counter(s) on {model.__tablename__}: {', '.join(unknown)}",
            details={"columns": unknown},
        )

    deltas = {k: int(v) for k, v in deltas.items() if v}
    if not deltas and not assign:
        return

    values = {getattr(model, k): getattr(model, k) + d for k, d in deltas.items()}
    values[model.last_updated] = utcnow()
    for k, v in (assign or {}).items():
        values[getattr(model, k)] = v

    if model in _STATUS_TRACKED and "qty" in deltas:
        values[model.status] = case(
            (model.qty + deltas["qty"] > 0, STOCK_STATUS_IN_STOCK),
            else_=STOCK_STATUS_OUT_OF_STOCK,
        )

    query = db.session.query(model).filter_by(**keys)
    for col in GUARDED_COLUMNS:
        if deltas.get(col, 0) < 0:
            query = query.filter(getattr(model, col) + deltas[col] >= 0)

    matched = query.update(values, synchronize_session="fetch")
    if matched:
        return

    row = db.session.query(model).filter_by(**keys).populate_existing().first()
    if row is None:
        if not required:
            return
        raise missing_error(f"{label} not found", details={"keys": keys})

    if deltas.get("qty", 0) < 0 and row.qty + deltas["qty"] < 0:
        raise InsufficientStockError(
            product_id=product_id or keys.get("product_id") or keys.get("id"),
            requested=-deltas["qty"],
            available=row.qty,
            location=label,
        )
    if deltas.get("in_transit", 0) < 0 and row.in_transit + deltas["in_transit"] < 0:
        raise ConsistencyError(
            f"In-transit reserve on {label} would go negative",
            details={"keys": keys, "in_transit": row.in_transit, "delta": deltas["in_transit"]},
        )
    raise ConsistencyError(f"Update of {label} matched no row", details={"keys": keys})


def increment_company(*, missing_error=ConsistencyError, **deltas) -> None:
    _increment(
        Company,
        {"singleton_key": COMPANY_SINGLETON_KEY},
        deltas,
        label="Company",
        missing_error=missing_error,
    )


def increment_company_product(product_id: str, *, assign: dict | None = None,
                              missing_error=ConsistencyError, **deltas) -> None:
    _increment(
        CompanyProduct,
        {"product_id": product_id},
        deltas,
        label=f"Company snapshot of product {product_id}",
        product_id=product_id,
        assign=assign,
        missing_error=missing_error,
    )


def increment_product(product_id: str, *, assign: dict | None = None,
                      missing_error=NotFoundError, **deltas) -> None:
    _increment(
        Product,
        {"id": product_id},
        deltas,
        label="Company",
        product_id=product_id,
        assign=assign,
        missing_error=missing_error,
    )


def increment_warehouse(warehouse_id: str, *, missing_error=NotFoundError, **deltas) -> None:
    _increment(
        Warehouse,
        {"id": warehouse_id},
        deltas,
        label=f"Warehouse {warehouse_id}",
        missing_error=missing_error,
    )


def increment_outlet(outlet_id: str, *, missing_error=NotFoundError, **deltas) -> None:
    _increment(
        Outlet,
        {"id": outlet_id},
        deltas,
        label=f"Outlet {outlet_id}",
        missing_error=missing_error,
    )


def increment_warehouse_inventory(warehouse_id: str, product_id: str, *, assign: dict | None = None,
                                  missing_error=NotFoundError, required: bool = True, **deltas) -> None:
    _increment(
        WarehouseInventory,
        {"warehouse_id": warehouse_id, "product_id": product_id},
        deltas,
        label=f"Warehouse {warehouse_id}",
        product_id=product_id,
        assign=assign,
        missing_error=missing_error,
        required=required,
    )


def increment_outlet_inventory(outlet_id: str, product_id: str, *, assign: dict | None = None,
                               missing_error=NotFoundError, **deltas) -> None:
    _increment(
        OutletInventory,
        {"outlet_id": outlet_id, "product_id": product_id},
        deltas,
        label=f"Outlet {outlet_id}",
        product_id=product_id,
        assign=assign,
        missing_error=missing_error,
    )


def _ensure_row(model, keys: dict, defaults: dict) -> bool:
    """Insert the row if absent. Returns True when this call created it."""
    existing = lock_for_update(db.session.query(model).filter_by(**keys)).first()
    if existing is not None:
        return False
    # The unique (location, product) constraint rejects a concurrent duplicate insert
    db.session.add(model(**keys, **defaults))
    db.session.flush()
    return True


def upsert_warehouse_inventory(
    warehouse_id: str,
    product_id: str,
    *,
    sku: str,
    name: str,
    unit_price_cents: int,
    **deltas,
) -> bool:
    """
    Increment the (warehouse, product) row, creating it on first receive.

    Snapshot fields are refreshed from the caller on every call.
    Returns True when the row was created.
    """
    snapshot = {"sku": sku, "name": name, "unit_price_cents": unit_price_cents}
    created = _ensure_row(
        WarehouseInventory,
        {"warehouse_id": warehouse_id, "product_id": product_id},
        snapshot,
    )
    increment_warehouse_inventory(
        warehouse_id,
        product_id,
        assign=snapshot,
        missing_error=ConsistencyError,
        **deltas,
    )
    return created


def upsert_outlet_inventory(
    outlet_id: str,
    product_id: str,
    *,
    sku: str,
    name: str,
    unit_price_cents: int,
    warehouse_id: str | None,
    **deltas,
) -> bool:
    """
    Increment the (outlet, product) row, creating it on first receive.

    unit_price_cents becomes the frozen selling price used when a sale line
    carries no explicit price. Returns True when the row was created.
    """
    snapshot = {
        "sku": sku,
        "name": name,
        "unit_price_cents": unit_price_cents,
        "warehouse_id": warehouse_id,
    }
    created = _ensure_row(
        OutletInventory,
        {"outlet_id": outlet_id, "product_id": product_id},
        snapshot,
    )
    increment_outlet_inventory(
        outlet_id,
        product_id,
        assign=snapshot,
        missing_error=ConsistencyError,
        **deltas,
    )
    return created


def delete_warehouse_inventory_row(warehouse_id: str, product_id: str) -> None:
    db.session.query(WarehouseInventory).filter_by(
        warehouse_id=warehouse_id, product_id=product_id
    ).delete(synchronize_session="fetch")


def delete_outlet_inventory_row(outlet_id: str, product_id: str) -> None:
    db.session.query(OutletInventory).filter_by(
        outlet_id=outlet_id, product_id=product_id
    ).delete(synchronize_session="fetch")


def delete_company_product(product_id: str) -> None:
    db.session.query(CompanyProduct).filter_by(product_id=product_id).delete(synchronize_session="fetch")
