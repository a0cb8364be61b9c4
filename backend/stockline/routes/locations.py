# Overview: Flask API routes for warehouses and outlets.

from flask import Blueprint, request, jsonify

from ..decorators import handle_ledger_errors, json_body
from ..services import deletion_service, location_service

warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")
outlets_bp = Blueprint("outlets", __name__, url_prefix="/api/outlets")


# ---------- warehouses ----------

@warehouses_bp.get("")
@handle_ledger_errors
def list_warehouses():
    items = location_service.list_warehouses()
    return {"items": items, "count": len(items)}


@warehouses_bp.post("")
@handle_ledger_errors
def create_warehouse():
    """
    Request body:
    {
        "name": str,
        "location": str,
        "address": str (optional),
        "manager_id": str (optional),
        "manager_name": str (optional)
    }
    """
    warehouse = location_service.create_warehouse(json_body())
    return jsonify(warehouse.to_dict()), 201


@warehouses_bp.get("/<warehouse_id>")
@handle_ledger_errors
def get_warehouse(warehouse_id: str):
    return jsonify(location_service.get_warehouse(warehouse_id).to_dict()), 200


@warehouses_bp.patch("/<warehouse_id>")
@handle_ledger_errors
def update_warehouse(warehouse_id: str):
    warehouse = location_service.update_warehouse(warehouse_id, json_body())
    return jsonify(warehouse.to_dict()), 200


@warehouses_bp.delete("/<warehouse_id>")
@handle_ledger_errors
def delete_warehouse(warehouse_id: str):
    """Delete a warehouse, its outlets and all stock they hold."""
    summary = deletion_service.delete_warehouse(warehouse_id, actor_id=request.args.get("actor_id"))
    return jsonify(summary), 200


@warehouses_bp.get("/<warehouse_id>/inventory")
@handle_ledger_errors
def warehouse_inventory(warehouse_id: str):
    in_stock_only = request.args.get("in_stock") in ("1", "true", "yes")
    return location_service.list_warehouse_inventory(warehouse_id, in_stock_only=in_stock_only)


# ---------- outlets ----------

@outlets_bp.get("")
@handle_ledger_errors
def list_outlets():
    items = location_service.list_outlets(
        warehouse_id=request.args.get("warehouse_id"),
        rep_id=request.args.get("rep_id"),
    )
    return {"items": items, "count": len(items)}


@outlets_bp.post("")
@handle_ledger_errors
def create_outlet():
    """
    Request body:
    {
        "name": str,
        "location": str,
        "warehouse_id": str,
        "rep_ids": [str] (optional),
        "rep_names": [str] (optional),
        "address", "phone", "manager_id", "manager_name": str (optional)
    }
    """
    data = json_body()
    rep_ids = data.pop("rep_ids", None)
    rep_names = data.pop("rep_names", None)
    outlet = location_service.create_outlet(data, rep_ids=rep_ids, rep_names=rep_names)
    return jsonify(outlet.to_dict()), 201


@outlets_bp.get("/<outlet_id>")
@handle_ledger_errors
def get_outlet(outlet_id: str):
    return jsonify(location_service.get_outlet(outlet_id).to_dict()), 200


@outlets_bp.patch("/<outlet_id>")
@handle_ledger_errors
def update_outlet(outlet_id: str):
    outlet = location_service.update_outlet(outlet_id, json_body())
    return jsonify(outlet.to_dict()), 200


@outlets_bp.put("/<outlet_id>/reps")
@handle_ledger_errors
def assign_reps(outlet_id: str):
    data = json_body()
    outlet = location_service.assign_reps(outlet_id, data.get("rep_ids"), data.get("rep_names"))
    return jsonify(outlet.to_dict()), 200


@outlets_bp.delete("/<outlet_id>")
@handle_ledger_errors
def delete_outlet(outlet_id: str):
    """Delete an outlet; in-flight shipments to it return to their senders."""
    summary = deletion_service.delete_outlet(outlet_id, actor_id=request.args.get("actor_id"))
    return jsonify(summary), 200


@outlets_bp.get("/<outlet_id>/inventory")
@handle_ledger_errors
def outlet_inventory(outlet_id: str):
    in_stock_only = request.args.get("in_stock") in ("1", "true", "yes")
    return location_service.list_outlet_inventory(outlet_id, in_stock_only=in_stock_only)
