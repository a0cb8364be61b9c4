# Overview: Warehouse and outlet administration plus per-location inventory listings.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Outlet, OutletInventory, Warehouse, WarehouseInventory
from ..models.documents import ENDPOINT_OUTLET, ENDPOINT_WAREHOUSE
from ..models.locations import LOCATION_STATUS_ACTIVE, LOCATION_STATUS_INACTIVE
from ..time_utils import utcnow
from .company_service import get_company
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import Movement, apply_movement

logger = logging.getLogger(__name__)

WAREHOUSE_MUTABLE_FIELDS = {"name", "location", "address", "manager_id", "manager_name", "status"}
OUTLET_MUTABLE_FIELDS = {"name", "location", "address", "phone", "manager_id", "manager_name", "status"}
LOCATION_STATUSES = {LOCATION_STATUS_ACTIVE, LOCATION_STATUS_INACTIVE}


def _require_text(patch: dict, *fields: str) -> None:
    for field in fields:
        value = patch.get(field)
        if value is None or not str(value).strip():
            raise ValidationError(f"{field} is required", details={"field": field})


def _apply_patch(row, patch: dict, allowed: set[str]) -> None:
    for key, value in patch.items():
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}", details={"field": key})
        if key in ("name", "location") and (value is None or not str(value).strip()):
            raise ValidationError(f"{key} cannot be blank", details={"field": key})
        if key == "status" and value not in LOCATION_STATUSES:
            raise ValidationError(f"Invalid status: {value}", details={"status": value})
        setattr(row, key, value.strip() if isinstance(value, str) else value)
    row.last_updated = utcnow()


def get_warehouse(warehouse_id: str) -> Warehouse:
    warehouse = db.session.query(Warehouse).filter_by(id=warehouse_id).first()
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found", details={"warehouse_id": warehouse_id})
    return warehouse


def get_outlet(outlet_id: str) -> Outlet:
    outlet = db.session.query(Outlet).filter_by(id=outlet_id).first()
    if outlet is None:
        raise NotFoundError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
    return outlet


def list_warehouses() -> list[dict]:
    rows = db.session.query(Warehouse).order_by(Warehouse.name.asc(), Warehouse.id.asc()).all()
    return [w.to_dict() for w in rows]


def list_outlets(warehouse_id: str | None = None, rep_id: str | None = None) -> list[dict]:
    query = db.session.query(Outlet)
    if warehouse_id:
        query = query.filter(Outlet.warehouse_id == warehouse_id)
    rows = query.order_by(Outlet.name.asc(), Outlet.id.asc()).all()
    if rep_id:
        # rep_ids is a JSON list
        rows = [o for o in rows if o.has_rep(rep_id)]
    return [o.to_dict() for o in rows]


def create_warehouse(patch: dict) -> Warehouse:
    def _op():
        with atomic():
            get_company()
            _require_text(patch, "name", "location")
            warehouse = Warehouse()
            _apply_patch(warehouse, patch, WAREHOUSE_MUTABLE_FIELDS)
            db.session.add(warehouse)
            db.session.flush()
            apply_movement(Movement.entity_count(ENDPOINT_WAREHOUSE, warehouse.id, 1))
        logger.info("Warehouse %s (%s) created", warehouse.id, warehouse.name)
        return warehouse

    return run_with_retry(_op)


def update_warehouse(warehouse_id: str, patch: dict) -> Warehouse:
    def _op():
        with atomic():
            warehouse = lock_for_update(db.session.query(Warehouse).filter_by(id=warehouse_id)).first()
            if warehouse is None:
                raise NotFoundError(f"Warehouse {warehouse_id} not found", details={"warehouse_id": warehouse_id})
            _apply_patch(warehouse, patch, WAREHOUSE_MUTABLE_FIELDS)
        return warehouse

    return run_with_retry(_op)


def _normalize_reps(rep_ids, rep_names) -> tuple[list[str], list[str]]:
    rep_ids = rep_ids or []
    rep_names = rep_names or []
    if not isinstance(rep_ids, list) or not all(isinstance(r, str) and r for r in rep_ids):
        raise ValidationError("rep_ids must be a list of ids")
    if len(set(rep_ids)) != len(rep_ids):
        raise ValidationError("rep_ids must not contain duplicates")
    if not isinstance(rep_names, list):
        raise ValidationError("rep_names must be a list")
    return list(rep_ids), list(rep_names)


def create_outlet(patch: dict, rep_ids: list[str] | None = None, rep_names: list[str] | None = None) -> Outlet:
    """Create an outlet under a warehouse; bumps warehouse and company outlet counts."""
    def _op():
        with atomic():
            get_company()
            _require_text(patch, "name", "location", "warehouse_id")
            warehouse_id = patch["warehouse_id"]
            get_warehouse(warehouse_id)
            reps, names = _normalize_reps(rep_ids, rep_names)

            outlet = Outlet(warehouse_id=warehouse_id, rep_ids=reps, rep_names=names)
            _apply_patch(outlet, {k: v for k, v in patch.items() if k != "warehouse_id"}, OUTLET_MUTABLE_FIELDS)
            db.session.add(outlet)
            db.session.flush()

            apply_movement(Movement.entity_count(ENDPOINT_OUTLET, outlet.id, 1, warehouse_id=warehouse_id))
        logger.info("Outlet %s (%s) created under warehouse %s", outlet.id, outlet.name, warehouse_id)
        return outlet

    return run_with_retry(_op)


def update_outlet(outlet_id: str, patch: dict) -> Outlet:
    def _op():
        with atomic():
            outlet = lock_for_update(db.session.query(Outlet).filter_by(id=outlet_id)).first()
            if outlet is None:
                raise NotFoundError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
            _apply_patch(outlet, patch, OUTLET_MUTABLE_FIELDS)
        return outlet

    return run_with_retry(_op)


def assign_reps(outlet_id: str, rep_ids: list[str], rep_names: list[str] | None = None) -> Outlet:
    """Replace the outlet's rep assignment. An outlet keeps at least one rep."""
    def _op():
        with atomic():
            outlet = lock_for_update(db.session.query(Outlet).filter_by(id=outlet_id)).first()
            if outlet is None:
                raise NotFoundError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
            reps, names = _normalize_reps(rep_ids, rep_names)
            if not reps:
                raise ValidationError("An outlet needs at least one rep")
            outlet.rep_ids = reps
            outlet.rep_names = names
            outlet.last_updated = utcnow()
        return outlet

    return run_with_retry(_op)


def list_warehouse_inventory(warehouse_id: str, in_stock_only: bool = False) -> dict:
    warehouse = get_warehouse(warehouse_id)
    query = db.session.query(WarehouseInventory).filter_by(warehouse_id=warehouse_id)
    if in_stock_only:
        query = query.filter(WarehouseInventory.qty > 0)
    rows = query.order_by(WarehouseInventory.name.asc(), WarehouseInventory.id.asc()).all()
    return {
        "warehouse": warehouse.to_dict(),
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "total_qty": sum(r.qty for r in rows),
        "total_in_transit": sum(r.in_transit for r in rows),
    }


def list_outlet_inventory(outlet_id: str, in_stock_only: bool = False) -> dict:
    outlet = get_outlet(outlet_id)
    query = db.session.query(OutletInventory).filter_by(outlet_id=outlet_id)
    if in_stock_only:
        query = query.filter(OutletInventory.qty > 0)
    rows = query.order_by(OutletInventory.name.asc(), OutletInventory.id.asc()).all()
    return {
        "outlet": outlet.to_dict(),
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "total_qty": sum(r.qty for r in rows),
        "total_value_cents": sum(r.qty * r.unit_price_cents for r in rows),
    }
