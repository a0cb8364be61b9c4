# Overview: Application-assigned opaque identifiers for ledger entities.

from __future__ import annotations

import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def new_layaway_id() -> str:
    """Short, human-readable layaway reference (e.g. LAY-3F9A1C2B)."""
    return f"LAY-{uuid.uuid4().hex[:8].upper()}"


def reversal_sale_id() -> str:
    return f"REV-{uuid.uuid4()}"


def reversal_transaction_id(transaction_id: str) -> str:
    return f"REV-{transaction_id}"
