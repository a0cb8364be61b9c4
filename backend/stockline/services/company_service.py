# Overview: Company singleton bootstrap and profile maintenance.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Company
from ..models.company import COMPANY_SINGLETON_KEY
from ..time_utils import utcnow
from .concurrency import atomic, run_with_retry

logger = logging.getLogger(__name__)

COMPANY_MUTABLE_FIELDS = {"name", "location", "address", "admin_name", "total_workers"}


def find_company() -> Company | None:
    return db.session.query(Company).filter_by(singleton_key=COMPANY_SINGLETON_KEY).first()


def get_company() -> Company:
    company = find_company()
    if company is None:
        raise NotFoundError("Company has not been bootstrapped")
    return company


def bootstrap_company(
    name: str,
    location: str,
    admin_id: str,
    admin_name: str,
    address: str | None = None,
) -> Company:
    """
    Create the one Company row.

    The unique singleton_key makes a second bootstrap fail even when two
    run concurrently.
    """
    def _op():
        with atomic():
            for field, value in (("name", name), ("location", location),
                                 ("admin_id", admin_id), ("admin_name", admin_name)):
                if not value or not str(value).strip():
                    raise ValidationError(f"{field} is required", details={"field": field})
            if find_company() is not None:
                raise ConflictError("Company already exists")
            company = Company(
                singleton_key=COMPANY_SINGLETON_KEY,
                name=name.strip(),
                location=location.strip(),
                address=address,
                admin_id=admin_id,
                admin_name=admin_name,
            )
            db.session.add(company)
            db.session.flush()
        logger.info("Company %s bootstrapped (%s)", company.name, company.id)
        return company

    return run_with_retry(_op)


def update_company(patch: dict) -> Company:
    def _op():
        with atomic():
            company = get_company()
            for key, value in patch.items():
                if key not in COMPANY_MUTABLE_FIELDS:
                    raise ValidationError(f"Field not allowed: {key}", details={"field": key})
                if key == "total_workers":
                    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                        raise ValidationError("total_workers must be a non-negative integer")
                elif key != "address" and (value is None or not str(value).strip()):
                    raise ValidationError(f"{key} cannot be blank", details={"field": key})
                setattr(company, key, value)
            company.last_updated = utcnow()
        return company

    return run_with_retry(_op)
