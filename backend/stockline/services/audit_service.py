# Overview: Recomputes ledger invariants from rows and reports every discrepancy found.

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Company,
    CompanyProduct,
    Outlet,
    OutletInventory,
    Product,
    Sale,
    Shipment,
    ShipmentLine,
    Warehouse,
    WarehouseInventory,
)
from ..models.company import COMPANY_SINGLETON_KEY
from ..models.documents import ENDPOINT_COMPANY, ENDPOINT_WAREHOUSE, SHIPMENT_STATUS_IN_TRANSIT

logger = logging.getLogger(__name__)


def _issue(check: str, message: str, **details) -> dict:
    return {"check": check, "message": message, "details": details}


def _sum(column, *criteria) -> int:
    query = db.session.query(func.coalesce(func.sum(column), 0))
    for criterion in criteria:
        query = query.filter(criterion)
    return int(query.scalar() or 0)


def _in_flight_by_source() -> dict[tuple[str, str, str], int]:
    """(source_type, source_id, product_id) -> qty on in-transit shipments."""
    rows = (
        db.session.query(
            Shipment.from_type,
            Shipment.from_id,
            ShipmentLine.product_id,
            func.sum(ShipmentLine.qty),
        )
        .join(ShipmentLine, ShipmentLine.shipment_id == Shipment.id)
        .filter(Shipment.status == SHIPMENT_STATUS_IN_TRANSIT)
        .group_by(Shipment.from_type, Shipment.from_id, ShipmentLine.product_id)
        .all()
    )
    return {(t, i, p): int(q or 0) for t, i, p, q in rows}


def _check_conservation(company: Company, issues: list[dict]) -> None:
    product_qty = _sum(Product.qty)
    warehouse_qty = _sum(WarehouseInventory.qty)
    outlet_qty = _sum(OutletInventory.qty)
    warehouse_reserved = _sum(WarehouseInventory.in_transit)
    expected = product_qty + warehouse_qty + outlet_qty + company.in_transit + warehouse_reserved
    if company.total_stock != expected:
        issues.append(_issue(
            "stock_conservation",
            f"Company.total_stock is {company.total_stock}, rows add up to {expected}",
            total_stock=company.total_stock,
            product_qty=product_qty,
            warehouse_qty=warehouse_qty,
            outlet_qty=outlet_qty,
            company_in_transit=company.in_transit,
            warehouse_in_transit=warehouse_reserved,
        ))


def _check_in_transit(company: Company, issues: list[dict]) -> None:
    in_flight = _in_flight_by_source()

    company_in_flight = sum(q for (t, _, _), q in in_flight.items() if t == ENDPOINT_COMPANY)
    snapshot_reserved = _sum(CompanyProduct.in_transit)
    if company.in_transit != company_in_flight or snapshot_reserved != company_in_flight:
        issues.append(_issue(
            "company_in_transit",
            "Company in-transit reserve does not match in-flight shipments",
            company_in_transit=company.in_transit,
            snapshot_in_transit=snapshot_reserved,
            in_flight=company_in_flight,
        ))

    for snapshot in db.session.query(CompanyProduct).all():
        expected = sum(
            q for (t, _, p), q in in_flight.items() if t == ENDPOINT_COMPANY and p == snapshot.product_id
        )
        if snapshot.in_transit != expected:
            issues.append(_issue(
                "product_in_transit",
                f"Company reserve for product {snapshot.product_id} is {snapshot.in_transit}, expected {expected}",
                product_id=snapshot.product_id,
                in_transit=snapshot.in_transit,
                expected=expected,
            ))

    seen = set()
    for row in db.session.query(WarehouseInventory).all():
        key = (ENDPOINT_WAREHOUSE, row.warehouse_id, row.product_id)
        seen.add(key)
        expected = in_flight.get(key, 0)
        if row.in_transit != expected:
            issues.append(_issue(
                "warehouse_in_transit",
                f"Warehouse {row.warehouse_id} reserve for product {row.product_id} is "
                f"{row.in_transit}, expected {expected}",
                warehouse_id=row.warehouse_id,
                product_id=row.product_id,
                in_transit=row.in_transit,
                expected=expected,
            ))
    for key, qty in in_flight.items():
        if key[0] == ENDPOINT_WAREHOUSE and key not in seen and qty:
            issues.append(_issue(
                "warehouse_in_transit",
                f"Warehouse {key[1]} has {qty} units of product {key[2]} in flight but no inventory row",
                warehouse_id=key[1],
                product_id=key[2],
                expected=qty,
            ))


def _check_location_totals(company: Company, issues: list[dict]) -> None:
    wi_stock = defaultdict(int)
    wi_rows = defaultdict(int)
    for row in db.session.query(WarehouseInventory).all():
        wi_stock[row.warehouse_id] += row.qty
        wi_rows[row.warehouse_id] += 1
    oi_stock = defaultdict(int)
    oi_rows = defaultdict(int)
    for row in db.session.query(OutletInventory).all():
        oi_stock[row.outlet_id] += row.qty
        oi_rows[row.outlet_id] += 1

    outlets = db.session.query(Outlet).all()
    outlets_per_warehouse = defaultdict(int)
    for outlet in outlets:
        outlets_per_warehouse[outlet.warehouse_id] += 1

    warehouses = db.session.query(Warehouse).all()
    for w in warehouses:
        if w.total_stock != wi_stock[w.id]:
            issues.append(_issue(
                "warehouse_stock",
                f"Warehouse {w.id} total_stock is {w.total_stock}, rows hold {wi_stock[w.id]}",
                warehouse_id=w.id, total_stock=w.total_stock, expected=wi_stock[w.id],
            ))
        if w.total_products != wi_rows[w.id]:
            issues.append(_issue(
                "warehouse_products",
                f"Warehouse {w.id} total_products is {w.total_products}, has {wi_rows[w.id]} rows",
                warehouse_id=w.id, total_products=w.total_products, expected=wi_rows[w.id],
            ))
        if w.total_outlets != outlets_per_warehouse[w.id]:
            issues.append(_issue(
                "warehouse_outlets",
                f"Warehouse {w.id} total_outlets is {w.total_outlets}, has {outlets_per_warehouse[w.id]}",
                warehouse_id=w.id, total_outlets=w.total_outlets, expected=outlets_per_warehouse[w.id],
            ))

    revenue_by_outlet = dict(
        db.session.query(Sale.outlet_id, func.sum(Sale.total_amount_cents)).group_by(Sale.outlet_id).all()
    )
    for o in outlets:
        if o.total_stock != oi_stock[o.id]:
            issues.append(_issue(
                "outlet_stock",
                f"Outlet {o.id} total_stock is {o.total_stock}, rows hold {oi_stock[o.id]}",
                outlet_id=o.id, total_stock=o.total_stock, expected=oi_stock[o.id],
            ))
        if o.total_products != oi_rows[o.id]:
            issues.append(_issue(
                "outlet_products",
                f"Outlet {o.id} total_products is {o.total_products}, has {oi_rows[o.id]} rows",
                outlet_id=o.id, total_products=o.total_products, expected=oi_rows[o.id],
            ))
        expected_revenue = int(revenue_by_outlet.get(o.id) or 0)
        if o.revenue_cents != expected_revenue:
            issues.append(_issue(
                "outlet_revenue",
                f"Outlet {o.id} revenue is {o.revenue_cents}, sales add up to {expected_revenue}",
                outlet_id=o.id, revenue_cents=o.revenue_cents, expected=expected_revenue,
            ))

    counts = {
        "total_products": db.session.query(func.count(Product.id)).scalar() or 0,
        "total_warehouses": len(warehouses),
        "total_outlets": len(outlets),
    }
    for field, expected in counts.items():
        actual = getattr(company, field)
        if actual != expected:
            issues.append(_issue(
                f"company_{field}",
                f"Company.{field} is {actual}, found {expected}",
                actual=actual, expected=expected,
            ))


def _check_snapshots(issues: list[dict]) -> None:
    snapshots = {s.product_id: s for s in db.session.query(CompanyProduct).all()}
    products = db.session.query(Product).all()
    for p in products:
        s = snapshots.pop(p.id, None)
        if s is None:
            issues.append(_issue("snapshot_missing", f"Product {p.id} has no company snapshot", product_id=p.id))
            continue
        drift = {
            field: {"product": getattr(p, field), "snapshot": getattr(s, field)}
            for field in ("sku", "name", "unit_price_cents", "qty")
            if getattr(p, field) != getattr(s, field)
        }
        if drift:
            issues.append(_issue(
                "snapshot_drift", f"Company snapshot of product {p.id} is out of sync",
                product_id=p.id, fields=drift,
            ))
    for orphan_id in snapshots:
        issues.append(_issue("snapshot_orphan", f"Snapshot for missing product {orphan_id}", product_id=orphan_id))


def _check_non_negative(issues: list[dict]) -> None:
    for model, columns in (
        (Product, ("qty",)),
        (CompanyProduct, ("qty", "in_transit")),
        (WarehouseInventory, ("qty", "in_transit")),
        (OutletInventory, ("qty",)),
    ):
        for column in columns:
            col = getattr(model, column)
            for row in db.session.query(model).filter(col < 0).all():
                issues.append(_issue(
                    "negative_quantity",
                    f"{model.__tablename__}.{column} is negative on row {row.id}",
                    table=model.__tablename__, row_id=row.id, column=column, value=getattr(row, column),
                ))


def _check_sales(issues: list[dict]) -> None:
    bad = (
        db.session.query(Sale)
        .filter(Sale.total_amount_cents != Sale.qty_sold * Sale.unit_price_cents)
        .all()
    )
    for sale in bad:
        issues.append(_issue(
            "sale_amount",
            f"Sale {sale.id} total {sale.total_amount_cents} != {sale.qty_sold} x {sale.unit_price_cents}",
            sale_id=sale.id,
        ))


def check_consistency() -> list[dict]:
    """
    Recompute the ledger invariants from rows.

    Returns a list of discrepancies; an empty list means the ledger is
    consistent. Nothing is repaired.
    """
    company = db.session.query(Company).filter_by(singleton_key=COMPANY_SINGLETON_KEY).first()
    if company is None:
        return [_issue("company_missing", "Company has not been bootstrapped")]

    issues: list[dict] = []
    _check_conservation(company, issues)
    _check_in_transit(company, issues)
    _check_location_totals(company, issues)
    _check_snapshots(issues)
    _check_non_negative(issues)
    _check_sales(issues)

    if issues:
        logger.warning("Consistency check found %s issue(s)", len(issues))
    return issues
