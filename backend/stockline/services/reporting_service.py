# Overview: Read-only sales reporting; checkout listings grouped by transaction and revenue summaries.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Outlet, Sale, Warehouse
from ..time_utils import parse_date_bound, to_utc_z


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_date_bound(start) if start else None
        end_dt = parse_date_bound(end, end_of_day=True) if end else None
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 dates", details={"start": start, "end": end})
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must not be after end", details={"start": start, "end": end})
    return start_dt, end_dt


def _filtered_sales(
    *,
    outlet_id: str | None,
    warehouse_id: str | None,
    rep_id: str | None,
    start_dt: datetime | None,
    end_dt: datetime | None,
    include_reversals: bool,
):
    query = db.session.query(Sale)
    if outlet_id:
        query = query.filter(Sale.outlet_id == outlet_id)
    if warehouse_id:
        query = query.filter(Sale.warehouse_id == warehouse_id)
    if rep_id:
        query = query.filter(Sale.sold_by == rep_id)
    if start_dt:
        query = query.filter(Sale.sold_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.sold_at <= end_dt)
    if not include_reversals:
        query = query.filter(Sale.is_reversal.is_(False))
    return query


def list_sales(
    *,
    outlet_id: str | None = None,
    warehouse_id: str | None = None,
    rep_id: str | None = None,
    start: str | None = None,
    end: str | None = None,
    include_reversals: bool = True,
    page: int = 1,
    per_page: int = 10,
    max_per_page: int = 100,
) -> dict:
    """
    Checkouts newest first. One item per transaction_id with its lines.

    Every Sale row carries a transaction_id, so grouping never falls back
    to timestamps.
    """
    start_dt, end_dt = _parse_range(start, end)
    base = _filtered_sales(
        outlet_id=outlet_id,
        warehouse_id=warehouse_id,
        rep_id=rep_id,
        start_dt=start_dt,
        end_dt=end_dt,
        include_reversals=include_reversals,
    )

    grouped = (
        base.with_entities(
            Sale.transaction_id.label("transaction_id"),
            func.min(Sale.sold_at).label("sold_at"),
        )
        .group_by(Sale.transaction_id)
    )

    per_page = min(max(per_page or 10, 1), max_per_page)
    page = max(page or 1, 1)
    total = grouped.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    page_rows = (
        grouped.order_by(func.min(Sale.sold_at).desc(), Sale.transaction_id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    txn_ids = [row.transaction_id for row in page_rows]

    lines_by_txn: dict[str, list[Sale]] = {txn: [] for txn in txn_ids}
    if txn_ids:
        lines = (
            base.filter(Sale.transaction_id.in_(txn_ids))
            .order_by(Sale.sold_at.asc(), Sale.id.asc())
            .all()
        )
        for sale in lines:
            lines_by_txn[sale.transaction_id].append(sale)

    items = []
    for txn in txn_ids:
        lines = lines_by_txn[txn]
        first = lines[0]
        items.append({
            "transaction_id": txn,
            "outlet_id": first.outlet_id,
            "sold_by": first.sold_by,
            "customer_name": first.customer_name,
            "is_reversal": first.is_reversal,
            "source": first.source,
            "sold_at": to_utc_z(first.sold_at),
            "total_qty": sum(s.qty_sold for s in lines),
            "total_amount_cents": sum(s.total_amount_cents for s in lines),
            "lines": [s.to_dict() for s in lines],
        })

    return {
        "items": items,
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def sales_summary(
    *,
    group_by: str = "outlet",
    start: str | None = None,
    end: str | None = None,
) -> dict:
    """Net units and revenue (reversals included) per outlet or warehouse."""
    if group_by not in ("outlet", "warehouse"):
        raise ValidationError("group_by must be outlet or warehouse", details={"group_by": group_by})
    start_dt, end_dt = _parse_range(start, end)

    key = Sale.outlet_id if group_by == "outlet" else Sale.warehouse_id
    query = db.session.query(
        key.label("key"),
        func.count(func.distinct(Sale.transaction_id)).label("transactions"),
        func.coalesce(func.sum(Sale.qty_sold), 0).label("units"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("revenue_cents"),
    )
    if start_dt:
        query = query.filter(Sale.sold_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.sold_at <= end_dt)
    rows = query.group_by(key).order_by(key).all()

    model = Outlet if group_by == "outlet" else Warehouse
    names = {
        row.id: row.name
        for row in db.session.query(model).filter(model.id.in_([r.key for r in rows if r.key])).all()
    } if rows else {}

    result_rows = [
        {
            f"{group_by}_id": row.key,
            "name": names.get(row.key),
            "transactions": int(row.transactions or 0),
            "units": int(row.units or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]
    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": result_rows,
        "totals": {
            "units": sum(r["units"] for r in result_rows),
            "revenue_cents": sum(r["revenue_cents"] for r in result_rows),
        },
    }
