# Overview: Flask API routes for the company singleton.

from flask import Blueprint, jsonify

from ..decorators import handle_ledger_errors, json_body
from ..services import company_service
from ..validation import require_fields

company_bp = Blueprint("company", __name__, url_prefix="/api/company")


@company_bp.post("")
@handle_ledger_errors
def bootstrap_company():
    """
    Create the company (once).

    Request body:
    {
        "name": str,
        "location": str,
        "admin_id": str,
        "admin_name": str,
        "address": str (optional)
    }

    Returns:
        201: Company created
        400: Missing fields
        409: Company already exists
    """
    data = json_body()
    require_fields(data, "name", "location", "admin_id", "admin_name")
    company = company_service.bootstrap_company(
        name=data["name"],
        location=data["location"],
        admin_id=data["admin_id"],
        admin_name=data["admin_name"],
        address=data.get("address"),
    )
    return jsonify(company.to_dict()), 201


@company_bp.get("")
@handle_ledger_errors
def get_company():
    return jsonify(company_service.get_company().to_dict()), 200


@company_bp.patch("")
@handle_ledger_errors
def update_company():
    company = company_service.update_company(json_body())
    return jsonify(company.to_dict()), 200
