# Overview: Flask API routes for the company catalogue; parses input and returns JSON responses.

# backend/stockline/routes/products.py
"""
Product catalogue routes.

Deleting a product is a cascading force-delete: stock held anywhere in the
network is destroyed, sales history for it is removed and shipments lose
the product's lines.
"""
from flask import Blueprint, request, jsonify
from ..models import Product
from ..services import products_service, deletion_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
    require_fields,
)
from ..decorators import handle_ledger_errors, json_body, pagination_args

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "unit_price_cents", "qty"},
    required_on_create={"sku", "name", "unit_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@handle_ledger_errors
def list_products():
    """
    List catalogue products.

    Query params:
    - search: str (optional) - matches name or SKU
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page
    """
    page, per_page, max_per_page = pagination_args()
    return products_service.list_products(
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
        max_per_page=max_per_page,
    )


@products_bp.get("/<product_id>")
@handle_ledger_errors
def get_product(product_id: str):
    return jsonify(products_service.get_product(product_id).to_dict()), 200


@products_bp.post("")
@handle_ledger_errors
def create_product_route():
    """
    Create a new product.

    Returns:
        201: Product created
        400: Invalid payload
        409: Duplicate SKU
    """
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    product = products_service.create_product(patch=patch)
    return jsonify(product.to_dict()), 201


@products_bp.put("/<product_id>")
@handle_ledger_errors
def update_product_route(product_id: str):
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    product = products_service.update_product(product_id, patch)
    return jsonify(product.to_dict()), 200


@products_bp.post("/<product_id>/restock")
@handle_ledger_errors
def restock_product(product_id: str):
    """
    Add company-level stock.

    Request body:
    {
        "added_qty": int,
        "restocked_by": str (optional),
        "note": str (optional)
    }
    """
    data = json_body()
    require_fields(data, "added_qty")
    product = products_service.restock_product(
        product_id,
        coerce_int(data["added_qty"], "added_qty"),
        restocked_by=data.get("restocked_by"),
        note=data.get("note"),
    )
    return jsonify(product.to_dict()), 200


@products_bp.get("/<product_id>/restocks")
@handle_ledger_errors
def list_restocks(product_id: str):
    products_service.get_product(product_id)
    items = products_service.list_restock_logs(product_id)
    return {"items": items, "count": len(items)}


@products_bp.delete("/<product_id>")
@handle_ledger_errors
def delete_product_route(product_id: str):
    """Force-delete a product and unwind everything that depends on it."""
    summary = deletion_service.force_delete_product(product_id, actor_id=request.args.get("actor_id"))
    return jsonify(summary), 200
