# backend/stockline/routes/reports.py
"""
Read-only reporting routes.
"""
from flask import Blueprint, request

from ..decorators import handle_ledger_errors
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales-summary")
@handle_ledger_errors
def sales_summary():
    """
    Net units and revenue per outlet or warehouse.

    Query params:
    - group_by: outlet | warehouse (default outlet)
    - start, end: ISO-8601 date or datetime (optional)
    """
    return reporting_service.sales_summary(
        group_by=request.args.get("group_by", "outlet"),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
