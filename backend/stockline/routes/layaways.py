# Overview: Flask API routes for layaways.

from flask import Blueprint, request, jsonify

from ..decorators import handle_ledger_errors, json_body
from ..services import layaway_service
from ..validation import coerce_int, coerce_lines, require_fields

layaways_bp = Blueprint("layaways", __name__, url_prefix="/api/layaways")

ITEM_INT_FIELDS = ("unit_price_cents",)


@layaways_bp.post("")
@handle_ledger_errors
def create_layaway():
    """
    Request body:
    {
        "outlet_id": str,
        "rep_id": str,
        "rep_name": str (optional),
        "customer_name": str (optional),
        "items": [{"product_id": str, "qty": int, "unit_price_cents": int (optional)}],
        "paid_now": int (optional, cents),
        "payment_method": str (optional)
    }
    """
    data = json_body()
    require_fields(data, "outlet_id", "items")
    layaway = layaway_service.create_layaway(
        outlet_id=data["outlet_id"],
        rep_id=data.get("rep_id"),
        items=coerce_lines(data["items"], "qty", optional_int_fields=ITEM_INT_FIELDS),
        paid_now=coerce_int(data.get("paid_now", 0), "paid_now"),
        customer_name=data.get("customer_name"),
        rep_name=data.get("rep_name"),
        payment_method=data.get("payment_method", "cash"),
    )
    return jsonify(layaway.to_dict()), 201


@layaways_bp.get("")
@handle_ledger_errors
def list_layaways():
    return layaway_service.list_layaways(
        outlet_id=request.args.get("outlet_id"),
        status=request.args.get("status"),
        rep_id=request.args.get("rep_id"),
    )


@layaways_bp.get("/<layaway_id>")
@handle_ledger_errors
def get_layaway(layaway_id: str):
    return jsonify(layaway_service.get_layaway(layaway_id).to_dict()), 200


@layaways_bp.patch("/<layaway_id>")
@handle_ledger_errors
def update_layaway(layaway_id: str):
    data = json_body()
    items = data.get("items")
    layaway = layaway_service.update_layaway(
        layaway_id,
        items=coerce_lines(items, "qty", optional_int_fields=ITEM_INT_FIELDS) if items is not None else None,
        additional_payment=coerce_int(data.get("additional_payment", 0), "additional_payment"),
        recorded_by=data.get("recorded_by"),
        customer_name=data.get("customer_name"),
        payment_method=data.get("payment_method", "cash"),
    )
    return jsonify(layaway.to_dict()), 200


@layaways_bp.post("/<layaway_id>/payments")
@handle_ledger_errors
def record_payment(layaway_id: str):
    data = json_body()
    require_fields(data, "amount_cents")
    layaway = layaway_service.record_layaway_payment(
        layaway_id,
        coerce_int(data["amount_cents"], "amount_cents"),
        method=data.get("method", "cash"),
        recorded_by=data.get("recorded_by"),
    )
    return jsonify(layaway.to_dict()), 200


@layaways_bp.post("/<layaway_id>/complete")
@handle_ledger_errors
def complete_layaway(layaway_id: str):
    data = json_body()
    result = layaway_service.complete_layaway(layaway_id, actor_id=data.get("actor_id"))
    return jsonify(result), 200


@layaways_bp.post("/<layaway_id>/cancel")
@handle_ledger_errors
def cancel_layaway(layaway_id: str):
    data = json_body()
    layaway = layaway_service.cancel_layaway(layaway_id, actor_id=data.get("actor_id"))
    return jsonify(layaway.to_dict()), 200
