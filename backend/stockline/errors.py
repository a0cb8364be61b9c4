# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every failure the ledger reports to callers."""

    kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """400-level input problem."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(LedgerError):
    kind = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    kind = "conflict"
    status_code = 409


class InsufficientStockError(LedgerError):
    """
    Requested quantity exceeds what the deducting aggregate holds.

    Always raised before the enclosing transaction commits, so callers
    never observe a partial deduction.
    """

    kind = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        *,
        product_id: str,
        requested: int,
        available: int,
        location: str | None = None,
    ):
        where = f" at {location}" if location else ""
        super().__init__(
            f"Insufficient stock for product {product_id}{where}. "
            f"Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
                "location": location,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidStateTransition(LedgerError):
    kind = "invalid_state_transition"
    status_code = 409


class AlreadyProcessed(InvalidStateTransition):
    """A concurrent or repeated transition already moved the document."""

    kind = "already_processed"


class AlreadyCompleted(InvalidStateTransition):
    kind = "already_completed"


class AlreadyReversed(LedgerError):
    kind = "already_reversed"
    status_code = 409


class OutstandingBalanceError(LedgerError):
    kind = "outstanding_balance"
    status_code = 409

    def __init__(self, layaway_id: str, balance_cents: int):
        super().__init__(
            f"Cannot complete layaway {layaway_id}: balance of {balance_cents} cents outstanding",
            details={"layaway_id": layaway_id, "balance_cents": balance_cents},
        )
        self.balance_cents = balance_cents


class ConsistencyError(LedgerError):
    """
    An aggregate that must exist is missing or a stored counter is corrupt.

    Surfaced as-is; nothing attempts an automatic repair.
    """

    kind = "consistency_error"
    status_code = 500
