# backend/stockline/routes/system.py
"""
System health and ledger consistency endpoints.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Company, Outlet, Product, Warehouse
from ..models.company import COMPANY_SINGLETON_KEY
from ..services import audit_service
from ..decorators import handle_ledger_errors
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        warehouse_count = db.session.query(Warehouse).count()
        outlet_count = db.session.query(Outlet).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "warehouses": warehouse_count,
                "outlets": outlet_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_company_health() -> dict:
    """A ledger without its Company row is operational for reads only."""
    start_time = time.time()
    try:
        company = db.session.query(Company).filter_by(singleton_key=COMPANY_SINGLETON_KEY).first()
        elapsed_ms = (time.time() - start_time) * 1000
        if company is None:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Company has not been bootstrapped",
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"company_id": company.id, "name": company.name},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Company health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Company lookup error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (no company yet)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    company_health = check_company_health()

    all_checks = [database_health, company_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "company": company_health,
        }
    }

    return response, http_status


@system_bp.get("/api/system/consistency")
@handle_ledger_errors
def consistency():
    """
    Recompute ledger invariants.

    Returns:
    - 200: {"consistent": true, "issues": []}
    - 409: discrepancies found
    """
    issues = audit_service.check_consistency()
    return {"consistent": not issues, "issues": issues}, (200 if not issues else 409)
