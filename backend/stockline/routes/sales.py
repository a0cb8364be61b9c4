# Overview: Flask API routes for sales transactions and reversals.

from flask import Blueprint, request, jsonify

from ..decorators import handle_ledger_errors, json_body, pagination_args
from ..services import reporting_service, sales_service
from ..validation import coerce_lines, require_fields

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

SALE_INT_FIELDS = ("unit_price_cents",)


@sales_bp.post("")
@handle_ledger_errors
def record_sale():
    """
    Record one checkout. A single line is a single sale; many lines share
    one transaction id.

    Request body:
    {
        "outlet_id": str,
        "sold_by": str,
        "customer_name": str (optional),
        "lines": [{"product_id": str, "qty_sold": int, "unit_price_cents": int}]
    }

    Returns:
        201: {"transaction_id", "total_amount_cents", "sales"}
        400: Invalid request / missing unit price
        409: Insufficient stock
    """
    data = json_body()
    require_fields(data, "outlet_id", "lines")
    result = sales_service.record_sale(
        data["outlet_id"],
        coerce_lines(data["lines"], "qty_sold", optional_int_fields=SALE_INT_FIELDS),
        sold_by=data.get("sold_by"),
        customer_name=data.get("customer_name"),
    )
    return jsonify(result), 201


@sales_bp.get("")
@handle_ledger_errors
def list_sales():
    """
    Checkouts grouped by transaction id, newest first.

    Query params: outlet_id, warehouse_id, rep_id, start, end,
    include_reversals (default true), page, per_page
    """
    page, per_page, max_per_page = pagination_args()
    return reporting_service.list_sales(
        outlet_id=request.args.get("outlet_id"),
        warehouse_id=request.args.get("warehouse_id"),
        rep_id=request.args.get("rep_id"),
        start=request.args.get("start"),
        end=request.args.get("end"),
        include_reversals=request.args.get("include_reversals", "true") not in ("0", "false", "no"),
        page=page or 1,
        per_page=per_page,
        max_per_page=max_per_page,
    )


@sales_bp.get("/<sale_id>")
@handle_ledger_errors
def get_sale(sale_id: str):
    return jsonify(sales_service.get_sale(sale_id).to_dict()), 200


@sales_bp.post("/<sale_id>/reverse")
@handle_ledger_errors
def reverse_sale(sale_id: str):
    data = json_body()
    reversal = sales_service.reverse_sale(sale_id, actor_id=data.get("actor_id"))
    return jsonify(reversal.to_dict()), 201


@transactions_bp.get("/<transaction_id>")
@handle_ledger_errors
def get_transaction(transaction_id: str):
    return jsonify(sales_service.get_transaction(transaction_id)), 200


@transactions_bp.put("/<transaction_id>")
@handle_ledger_errors
def edit_transaction(transaction_id: str):
    """
    Replace every line of a transaction (admin). Lines may omit
    unit_price_cents to use the outlet's frozen price.
    """
    data = json_body()
    require_fields(data, "lines")
    result = sales_service.edit_transaction(
        transaction_id,
        coerce_lines(data["lines"], "qty_sold", optional_int_fields=SALE_INT_FIELDS),
        actor_id=data.get("actor_id"),
    )
    return jsonify(result), 200


@transactions_bp.delete("/<transaction_id>")
@handle_ledger_errors
def delete_transaction(transaction_id: str):
    result = sales_service.delete_transaction(transaction_id, actor_id=request.args.get("actor_id"))
    return jsonify(result), 200
