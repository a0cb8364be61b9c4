# backend/stockline/routes/shipments.py
"""
Shipment API routes.
"""
from flask import Blueprint, request, jsonify

from ..decorators import handle_ledger_errors, json_body, pagination_args
from ..services import shipment_service
from ..validation import coerce_lines, require_fields


shipments_bp = Blueprint("shipments", __name__, url_prefix="/api/shipments")


@shipments_bp.post("")
@handle_ledger_errors
def create_shipment():
    """
    Create a shipment and dispatch its lines from the source.

    Request body:
    {
        "from_type": "Company" | "Warehouse",
        "from_id": str (optional for Company),
        "to_type": "Warehouse" | "Outlet",
        "to_id": str,
        "lines": [{"product_id": str, "qty": int}],
        "sender_id": str (optional),
        "sender_phone": str (optional)
    }

    Returns:
        201: Shipment created (IN_TRANSIT)
        400: Invalid request
        409: Insufficient source stock
    """
    data = json_body()
    require_fields(data, "from_type", "to_type", "to_id", "lines")
    shipment = shipment_service.create_shipment(
        from_id=data.get("from_id"),
        to_id=data["to_id"],
        from_type=data["from_type"],
        to_type=data["to_type"],
        lines=coerce_lines(data["lines"], "qty"),
        sender_id=data.get("sender_id"),
        sender_phone=data.get("sender_phone"),
    )
    return jsonify(shipment.to_dict()), 201


@shipments_bp.get("")
@handle_ledger_errors
def list_shipments():
    """
    Query params:
    - status: IN_TRANSIT | RECEIVED | REJECTED | CANCELLED (optional)
    - endpoint_id: str (optional) - shipments from or to this location
    - page, per_page: int (optional)
    """
    page, per_page, max_per_page = pagination_args()
    return shipment_service.list_shipments(
        status=request.args.get("status"),
        endpoint_id=request.args.get("endpoint_id"),
        page=page,
        per_page=per_page,
        max_per_page=max_per_page,
    )


@shipments_bp.get("/<shipment_id>")
@handle_ledger_errors
def get_shipment(shipment_id: str):
    return jsonify(shipment_service.get_shipment(shipment_id).to_dict()), 200


@shipments_bp.post("/<shipment_id>/<action>")
@handle_ledger_errors
def transition_shipment(shipment_id: str, action: str):
    """
    Receive, reject or cancel an in-transit shipment.

    Returns:
        200: Transition applied
        400: Unknown action
        404: Shipment not found
        409: Already processed / invalid state
    """
    data = json_body()
    shipment = shipment_service.transition_shipment(shipment_id, action, actor_id=data.get("actor_id"))
    return jsonify(shipment.to_dict()), 200


@shipments_bp.patch("/<shipment_id>")
@handle_ledger_errors
def edit_shipment(shipment_id: str):
    """
    Edit destination and/or lines of an in-transit shipment. The source
    reservation is re-run for the new lines.
    """
    data = json_body()
    lines = data.get("lines")
    shipment = shipment_service.edit_shipment(
        shipment_id,
        to_id=data.get("to_id"),
        to_type=data.get("to_type"),
        lines=coerce_lines(lines, "qty") if lines is not None else None,
    )
    return jsonify(shipment.to_dict()), 200
