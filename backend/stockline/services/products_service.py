# backend/stockline/services/products_service.py
"""
Company catalogue service.

Product.qty is stock still at Company level. Every change to it goes
through the COMPANY_RESTOCK movement so the company snapshot and
Company.total_stock move with it.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import CompanyProduct, Product, RestockLog
from ..models.inventory import STOCK_STATUS_OUT_OF_STOCK
from ..validation import MAX_PRICE_CENTS
from .company_service import get_company
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import ENTITY_PRODUCT, Movement, apply_movement
from .ledger_service import increment_company_product

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "unit_price_cents", "qty"}


def _check_price(price) -> None:
    if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
        raise ValidationError("unit_price_cents must be a positive integer", details={"unit_price_cents": price})
    if price > MAX_PRICE_CENTS:
        raise ValidationError(
            f"unit_price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})",
            details={"unit_price_cents": price},
        )


def _check_qty(qty, field: str = "qty") -> None:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
        raise ValidationError(f"{field} must be a non-negative integer", details={field: qty})


def _sku_taken(sku: str, exclude_id: str | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def get_product(product_id: str) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
    max_per_page: int = 100,
) -> dict:
    """
    Catalogue listing with optional name/SKU search and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 10, max_per_page)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict) -> Product:
    """
    Create a product in the company catalogue.

    Raises:
        ValidationError: bad price/qty
        ConflictError: SKU already exists
        NotFoundError: company not bootstrapped
    """
    def _op():
        with atomic():
            company = get_company()
            sku = (patch.get("sku") or "").strip()
            name = (patch.get("name") or "").strip()
            if not sku or not name:
                raise ValidationError("sku and name are required")
            price = patch.get("unit_price_cents")
            _check_price(price)
            qty = patch.get("qty", 0) or 0
            _check_qty(qty)
            if _sku_taken(sku):
                raise ConflictError(f"SKU already exists: {sku}", details={"sku": sku})

            product = Product(
                company_id=company.id,
                sku=sku,
                name=name,
                description=patch.get("description"),
                unit_price_cents=price,
                qty=0,
                status=STOCK_STATUS_OUT_OF_STOCK,
            )
            db.session.add(product)
            db.session.flush()
            db.session.add(CompanyProduct(
                company_id=company.id,
                product_id=product.id,
                sku=sku,
                name=name,
                unit_price_cents=price,
                qty=0,
                in_transit=0,
            ))
            db.session.flush()

            apply_movement(Movement.entity_count(ENTITY_PRODUCT, product.id, 1))
            if qty:
                apply_movement(Movement.company_restock(product.id, qty))
        logger.info("Product %s (%s) created with %s units", product.id, sku, qty)
        return product

    return run_with_retry(_op)


def update_product(product_id: str, patch: dict) -> Product:
    """
    Update catalogue fields. A qty change is applied as a signed restock;
    sku/name/price are refreshed on the company snapshot. Prices already
    frozen on shipments, inventory rows and sales are untouched.
    """
    def _op():
        with atomic():
            product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

            for key in patch:
                if key not in PRODUCT_MUTABLE_FIELDS:
                    raise ValidationError(f"Field not allowed: {key}", details={"field": key})

            if "sku" in patch:
                sku = (patch["sku"] or "").strip()
                if not sku:
                    raise ValidationError("sku cannot be blank")
                if _sku_taken(sku, exclude_id=product_id):
                    raise ConflictError(f"SKU already exists: {sku}", details={"sku": sku})
                product.sku = sku
            if "name" in patch:
                name = (patch["name"] or "").strip()
                if not name:
                    raise ValidationError("name cannot be blank")
                product.name = name
            if "description" in patch:
                product.description = patch["description"]
            if "unit_price_cents" in patch:
                _check_price(patch["unit_price_cents"])
                product.unit_price_cents = patch["unit_price_cents"]

            diff = 0
            if "qty" in patch:
                _check_qty(patch["qty"])
                diff = patch["qty"] - product.qty
            db.session.flush()

            increment_company_product(
                product_id,
                assign={
                    "sku": product.sku,
                    "name": product.name,
                    "unit_price_cents": product.unit_price_cents,
                },
            )
            if diff:
                apply_movement(Movement.company_restock(product_id, diff))
        return product

    return run_with_retry(_op)


def restock_product(
    product_id: str,
    added_qty: int,
    restocked_by: str | None = None,
    note: str | None = None,
) -> Product:
    """Add company-level stock and append a RestockLog entry."""
    def _op():
        with atomic():
            if isinstance(added_qty, bool) or not isinstance(added_qty, int) or added_qty <= 0:
                raise ValidationError("added_qty must be a positive integer", details={"added_qty": added_qty})
            product = get_product(product_id)
            apply_movement(Movement.company_restock(product_id, added_qty))
            db.session.add(RestockLog(
                product_id=product_id,
                added_qty=added_qty,
                restocked_by=restocked_by,
                note=note,
            ))
        logger.info("Product %s restocked with %s units by %s", product_id, added_qty, restocked_by)
        return product

    return run_with_retry(_op)


def list_restock_logs(product_id: str) -> list[dict]:
    rows = (
        db.session.query(RestockLog)
        .filter_by(product_id=product_id)
        .order_by(RestockLog.occurred_at.desc(), RestockLog.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]
