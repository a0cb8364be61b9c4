# backend/stockline/services/shipment_service.py
"""
Shipment state machine.

LIFECYCLE:
1. IN_TRANSIT: created; every line is dispatched (deducted from the source
   and held in the source's in_transit reserve)
2. RECEIVED: destination inventory applied, source reserve released
3. REJECTED: destination refused the goods; quantities go back to the source
4. CANCELLED: sender withdrew the shipment; quantities go back to the source

RECEIVED, REJECTED and CANCELLED are terminal. Every transition out of
IN_TRANSIT flips the status with a conditional UPDATE (status == IN_TRANSIT),
so two concurrent approvals can never both apply inventory.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..errors import (
    AlreadyProcessed,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from ..models import Company, Outlet, Product, Shipment, ShipmentLine, Warehouse
from ..models.company import COMPANY_SINGLETON_KEY
from ..models.documents import (
    ENDPOINT_COMPANY,
    ENDPOINT_OUTLET,
    ENDPOINT_WAREHOUSE,
    SHIPMENT_DESTINATION_TYPES,
    SHIPMENT_SOURCE_TYPES,
    SHIPMENT_STATUS_CANCELLED,
    SHIPMENT_STATUS_IN_TRANSIT,
    SHIPMENT_STATUS_RECEIVED,
    SHIPMENT_STATUS_REJECTED,
    SHIPMENT_TERMINAL_STATUSES,
)
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .inventory_service import (
    Movement,
    apply_movement,
    check_source_stock,
    record_shipment_settled,
)

logger = logging.getLogger(__name__)

ACTION_RECEIVE = "receive"
ACTION_REJECT = "reject"
ACTION_CANCEL = "cancel"

# action -> terminal status it produces
SHIPMENT_ACTIONS = {
    ACTION_RECEIVE: SHIPMENT_STATUS_RECEIVED,
    ACTION_REJECT: SHIPMENT_STATUS_REJECTED,
    ACTION_CANCEL: SHIPMENT_STATUS_CANCELLED,
}


def _resolve_endpoint(endpoint_type: str, endpoint_id: str, role: str) -> str:
    """Return the endpoint's display name or raise ValidationError."""
    if endpoint_type == ENDPOINT_COMPANY:
        company = db.session.query(Company).filter_by(singleton_key=COMPANY_SINGLETON_KEY).first()
        if company is None or (endpoint_id and endpoint_id != company.id):
            raise ValidationError(f"Unknown {role} company: {endpoint_id}", details={role: endpoint_id})
        return company.name
    model = Warehouse if endpoint_type == ENDPOINT_WAREHOUSE else Outlet
    row = db.session.query(model).filter_by(id=endpoint_id).first()
    if row is None:
        raise ValidationError(
            f"Unknown {role} {endpoint_type.lower()}: {endpoint_id}",
            details={role: endpoint_id, f"{role}_type": endpoint_type},
        )
    return row.name


def _company_id() -> str | None:
    company = db.session.query(Company).filter_by(singleton_key=COMPANY_SINGLETON_KEY).first()
    return company.id if company else None


def _normalize_lines(lines) -> list[tuple[str, int]]:
    if not lines or not isinstance(lines, list):
        raise ValidationError("Shipment requires at least one product line")

    seen = set()
    normalized = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each product line must be an object")
        product_id = raw.get("product_id")
        qty = raw.get("qty")
        if not product_id:
            raise ValidationError("product_id is required on every line")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError(
                f"qty must be a positive integer for product {product_id}",
                details={"product_id": product_id, "qty": qty},
            )
        if product_id in seen:
            raise ValidationError(
                f"Product {product_id} appears more than once",
                details={"product_id": product_id},
            )
        seen.add(product_id)
        normalized.append((product_id, qty))
    return normalized


def _build_lines(shipment: Shipment, normalized: list[tuple[str, int]]) -> list[ShipmentLine]:
    """Snapshot product data onto new lines after checking source stock."""
    built = []
    for position, (product_id, qty) in enumerate(normalized):
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise ValidationError(f"Product {product_id} not found", details={"product_id": product_id})
        check_source_stock(shipment.from_type, shipment.from_id, product_id, qty)
        built.append(ShipmentLine(
            product_id=product_id,
            position=position,
            sku=product.sku,
            name=product.name,
            qty=qty,
            unit_price_cents=product.unit_price_cents,
        ))
    return built


def _dispatch_lines(shipment: Shipment) -> None:
    for line in shipment.lines:
        apply_movement(Movement.shipment_dispatch(shipment, line))


def _release_lines(shipment: Shipment) -> None:
    for line in shipment.lines:
        apply_movement(Movement.shipment_release(shipment, line))


def _receive_lines(shipment: Shipment) -> None:
    for line in shipment.lines:
        apply_movement(Movement.shipment_receive(shipment, line))
    record_shipment_settled(shipment)


def create_shipment(
    from_id: str | None,
    to_id: str,
    from_type: str,
    to_type: str,
    lines: list[dict],
    sender_id: str | None = None,
    sender_phone: str | None = None,
) -> Shipment:
    """
    Create a shipment (status: IN_TRANSIT) and dispatch every line.

    Args:
        from_id: Source id (Company id, or None for the company)
        to_id: Destination warehouse/outlet id
        from_type: "Company" or "Warehouse"
        to_type: "Warehouse" or "Outlet"
        lines: [{"product_id": str, "qty": int}, ...]

    Raises:
        ValidationError: missing fields, bad types, self-shipment, unknown endpoint/product
        InsufficientStockError: source holds less than a line requests
    """
    def _op():
        with atomic():
            if from_type not in SHIPMENT_SOURCE_TYPES:
                raise ValidationError(f"Invalid source type: {from_type}", details={"from_type": from_type})
            if to_type not in SHIPMENT_DESTINATION_TYPES:
                raise ValidationError(f"Invalid destination type: {to_type}", details={"to_type": to_type})
            if not to_id:
                raise ValidationError("Destination id is required")
            if from_type != ENDPOINT_COMPANY and not from_id:
                raise ValidationError("Source id is required")

            source_id = from_id if from_type != ENDPOINT_COMPANY else (from_id or _company_id())
            if from_type == to_type and source_id == to_id:
                raise ValidationError("Cannot ship to the same location", details={"id": to_id})

            from_name = _resolve_endpoint(from_type, source_id, "from")
            to_name = _resolve_endpoint(to_type, to_id, "to")
            normalized = _normalize_lines(lines)

            shipment = Shipment(
                from_type=from_type,
                from_id=source_id,
                from_name=from_name,
                to_type=to_type,
                to_id=to_id,
                to_name=to_name,
                status=SHIPMENT_STATUS_IN_TRANSIT,
                sender_id=sender_id,
                sender_phone=sender_phone,
            )
            shipment.lines = _build_lines(shipment, normalized)
            db.session.add(shipment)
            db.session.flush()

            _dispatch_lines(shipment)

        logger.info(
            "Shipment %s created: %s %s -> %s %s (%s units)",
            shipment.id, from_type, source_id, to_type, to_id, shipment.total_qty,
        )
        return shipment

    return run_with_retry(_op)


def get_shipment(shipment_id: str) -> Shipment:
    shipment = db.session.query(Shipment).filter_by(id=shipment_id).first()
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found", details={"shipment_id": shipment_id})
    return shipment


def _claim_transition(shipment: Shipment, new_status: str, actor_id: str | None) -> None:
    """Conditional status flip; exactly one caller wins for a given shipment."""
    matched = (
        db.session.query(Shipment)
        .filter(Shipment.id == shipment.id, Shipment.status == SHIPMENT_STATUS_IN_TRANSIT)
        .update(
            {
                Shipment.status: new_status,
                Shipment.processed_by: actor_id,
                Shipment.processed_at: utcnow(),
                Shipment.last_updated: utcnow(),
                Shipment.version_id: Shipment.version_id + 1,
            },
            synchronize_session="fetch",
        )
    )
    if matched == 0:
        raise AlreadyProcessed(
            f"Shipment {shipment.id} was already processed",
            details={"shipment_id": shipment.id},
        )
    db.session.refresh(shipment)


def transition_shipment(shipment_id: str, action: str, actor_id: str | None = None) -> Shipment:
    """
    Move an in-transit shipment to a terminal state.

    Raises:
        ValidationError: unknown action
        NotFoundError: no such shipment
        AlreadyProcessed: the same action already ran (or won a race)
        InvalidStateTransition: the shipment is terminal in another state
    """
    if action not in SHIPMENT_ACTIONS:
        raise ValidationError(
            f"Invalid action: {action}. Must be one of {', '.join(SHIPMENT_ACTIONS)}",
            details={"action": action},
        )
    new_status = SHIPMENT_ACTIONS[action]

    def _op():
        with atomic():
            shipment = get_shipment(shipment_id)
            if shipment.status == new_status:
                raise AlreadyProcessed(
                    f"Shipment {shipment_id} is already {new_status}",
                    details={"shipment_id": shipment_id, "status": shipment.status},
                )
            if shipment.status in SHIPMENT_TERMINAL_STATUSES:
                raise InvalidStateTransition(
                    f"Cannot {action} shipment in {shipment.status} status",
                    details={"shipment_id": shipment_id, "status": shipment.status, "action": action},
                )

            _claim_transition(shipment, new_status, actor_id)

            if action == ACTION_RECEIVE:
                _receive_lines(shipment)
            else:
                _release_lines(shipment)

        logger.info("Shipment %s %s by %s", shipment_id, new_status, actor_id)
        return shipment

    return run_with_retry(_op)


def receive_shipment(shipment_id: str, actor_id: str | None = None) -> Shipment:
    return transition_shipment(shipment_id, ACTION_RECEIVE, actor_id)


def reject_shipment(shipment_id: str, actor_id: str | None = None) -> Shipment:
    return transition_shipment(shipment_id, ACTION_REJECT, actor_id)


def cancel_shipment(shipment_id: str, actor_id: str | None = None) -> Shipment:
    return transition_shipment(shipment_id, ACTION_CANCEL, actor_id)


def edit_shipment(
    shipment_id: str,
    to_id: str | None = None,
    to_type: str | None = None,
    lines: list[dict] | None = None,
) -> Shipment:
    """
    Administrative edit of an in-transit shipment.

    The current reservation is released first and the (possibly new) lines are
    dispatched again, so source reserves always match what is in flight.
    """
    def _op():
        with atomic():
            shipment = lock_for_update(db.session.query(Shipment).filter_by(id=shipment_id)).first()
            if shipment is None:
                raise NotFoundError(f"Shipment {shipment_id} not found", details={"shipment_id": shipment_id})
            if shipment.status != SHIPMENT_STATUS_IN_TRANSIT:
                raise InvalidStateTransition(
                    f"Cannot edit shipment in {shipment.status} status",
                    details={"shipment_id": shipment_id, "status": shipment.status},
                )

            new_to_type = to_type or shipment.to_type
            new_to_id = to_id or shipment.to_id
            if new_to_type not in SHIPMENT_DESTINATION_TYPES:
                raise ValidationError(f"Invalid destination type: {new_to_type}", details={"to_type": new_to_type})
            if new_to_type == shipment.from_type and new_to_id == shipment.from_id:
                raise ValidationError("Cannot ship to the same location", details={"id": new_to_id})
            to_name = _resolve_endpoint(new_to_type, new_to_id, "to")

            if lines is None:
                normalized = [(line.product_id, line.qty) for line in shipment.lines]
            else:
                normalized = _normalize_lines(lines)

            _release_lines(shipment)

            shipment.to_type = new_to_type
            shipment.to_id = new_to_id
            shipment.to_name = to_name
            shipment.last_updated = utcnow()
            if lines is not None:
                shipment.lines = []
                db.session.flush()
                shipment.lines = _build_lines(shipment, normalized)
                db.session.flush()

            _dispatch_lines(shipment)

        logger.info("Shipment %s edited: -> %s %s", shipment_id, shipment.to_type, shipment.to_id)
        return shipment

    return run_with_retry(_op)


def list_shipments(
    status: str | None = None,
    endpoint_id: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
    max_per_page: int = 100,
) -> dict:
    """
    Shipments newest first, optionally filtered by status and by an endpoint
    appearing on either side.
    """
    query = db.session.query(Shipment)
    if status:
        query = query.filter(Shipment.status == status)
    if endpoint_id:
        query = query.filter(db.or_(Shipment.from_id == endpoint_id, Shipment.to_id == endpoint_id))
    query = query.order_by(Shipment.created_at.desc(), Shipment.id.asc())

    if page is None:
        shipments = query.all()
        return {"items": [s.to_dict() for s in shipments], "count": len(shipments)}

    per_page = min(per_page or 10, max_per_page)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    shipments = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in shipments],
        "count": len(shipments),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
